"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """System roles."""

    MENTEE = "mentee"
    MENTOR = "mentor"
    ADMIN = "admin"


class SessionStatusEnum(StrEnum):
    """Mentorship session lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PENDING_RESCHEDULE = "pending_reschedule"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentStatusEnum(StrEnum):
    """Payment processing status."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentGatewayEnum(StrEnum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    PAYMOB = "paymob"


class RefundStatusEnum(StrEnum):
    """Refund outcome attached to a payment."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class MeetingStatusEnum(StrEnum):
    """Video meeting availability for a session."""

    PENDING = "pending"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class RecordingStatusEnum(StrEnum):
    """Recording availability for a session."""

    NOT_READY = "not_ready"
    READY = "ready"
    FAILED = "failed"


class RecordingAvailabilityEnum(StrEnum):
    """Recording/transcript status exposed to participants."""

    AVAILABLE = "available"
    PROCESSING = "processing"
    FAILED = "failed"


class RecordingStageEnum(StrEnum):
    """Recording ingestion pipeline stage."""

    RECEIVED = "received"
    STORED = "stored"
    TRANSCRIBED = "transcribed"
    COMPLETED = "completed"
    FAILED = "failed"


class RescheduleStatusEnum(StrEnum):
    """Reschedule request status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class JobKindEnum(StrEnum):
    """Deferred actions executed by the scheduled jobs worker."""

    CREATE_MEETING = "create_meeting"
    SEND_JOIN_LINK = "send_join_link"
    AUTO_TERMINATE = "auto_terminate"
    NO_SHOW_CHECK = "no_show_check"
    RELEASE_PAYMENT_HOLD = "release_payment_hold"
    REVIEW_REQUEST = "review_request"
    RELEASE_UNPAID_SESSION = "release_unpaid_session"
    RESCHEDULE_EXPIRY = "reschedule_expiry"
    RECORDING_INGESTION = "recording_ingestion"


class JobStatusEnum(StrEnum):
    """Scheduled job status."""

    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationStatusEnum(StrEnum):
    """Notification delivery status."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
