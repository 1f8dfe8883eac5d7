from __future__ import annotations

import pytest
from fastapi import HTTPException

import app.main as main_module
from app.core.config import Settings


@pytest.mark.asyncio
async def test_readiness_check_returns_ready_when_database_is_available(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _ready() -> bool:
        return True

    monkeypatch.setattr(main_module, "_is_database_ready", _ready)

    response = await main_module.readiness_check()

    assert response["status"] == "ready"
    assert response["database"] == "ok"
    assert "timestamp" in response


@pytest.mark.asyncio
async def test_readiness_check_returns_503_when_database_is_unavailable(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _not_ready() -> bool:
        return False

    monkeypatch.setattr(main_module, "_is_database_ready", _not_ready)

    with pytest.raises(HTTPException) as exc:
        await main_module.readiness_check()
    assert exc.value.status_code == 503


def test_missing_integrations_lists_unconfigured_providers() -> None:
    config = Settings(
        _env_file=None,
        stripe_secret_key="sk_test",
        zoom_account_id="acct",
        zoom_client_id="client",
        zoom_client_secret="secret",
    )

    assert main_module.missing_integrations(config) == ["paymob", "storage", "deepgram"]
