"""
Core package containing configuration, database, security, logging and errors.
"""
from orderdesk.core.config import settings
from orderdesk.core.database import Base, DbSession, get_db_session
from orderdesk.core.logging import configure_logging, get_logger
from orderdesk.core.security import (
    create_access_token,
    create_staff_token,
    decode_access_token,
    payment_signature,
    verify_payment_signature,
    verify_webhook_signature,
)

__all__ = [
    "settings",
    "Base",
    "DbSession",
    "get_db_session",
    "configure_logging",
    "get_logger",
    "create_access_token",
    "create_staff_token",
    "decode_access_token",
    "payment_signature",
    "verify_payment_signature",
    "verify_webhook_signature",
]
