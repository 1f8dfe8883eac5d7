"""Scheduling API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.enums import RoleEnum
from app.modules.identity.service import require_roles
from app.modules.scheduling.schemas import SlotCreate, SlotRead
from app.modules.scheduling.service import SchedulingService, get_scheduling_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


@router.post("/slots", response_model=SlotRead, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(require_roles(RoleEnum.MENTOR, RoleEnum.ADMIN)),
) -> SlotRead:
    """Publish a time slot."""
    slot = await service.create_slot(payload, current_user)
    return SlotRead.model_validate(slot)


@router.get("/slots/available", response_model=Page[SlotRead])
async def list_available_slots(
    mentor_id: UUID | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: SchedulingService = Depends(get_scheduling_service),
) -> Page[SlotRead]:
    """List unbooked future slots."""
    items, total = await service.list_available_slots(mentor_id, pagination.limit, pagination.offset)
    serialized = [SlotRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    slot_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(require_roles(RoleEnum.MENTOR, RoleEnum.ADMIN)),
) -> Response:
    """Delete an unbooked slot."""
    await service.delete_slot(slot_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
