"""
StoreSetting model - staff-editable configuration documents keyed by name.
"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from orderdesk.core.database import Base
from orderdesk.models.order import JsonDocument


class StoreSetting(Base):
    """One row per settings document (fee schedule, UPI payee details)."""

    __tablename__ = "store_settings"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    # Only the fields staff have overridden; the rest come from the environment
    value: Mapped[dict[str, Any]] = mapped_column(JsonDocument, default=dict)
    updated_by: Mapped[Optional[str]] = mapped_column(String(100))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<StoreSetting {self.key}>"
