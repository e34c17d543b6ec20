"""
Store settings repository: keyed configuration documents.
"""
from typing import Any, Optional

from sqlalchemy import func

from orderdesk.models.store_setting import StoreSetting
from orderdesk.repositories.base import BaseRepository


class StoreSettingRepository(BaseRepository[StoreSetting]):
    """Repository for StoreSetting documents."""

    model = StoreSetting

    async def get_document(self, key: str) -> dict[str, Any]:
        """Stored overrides for a key; empty when staff never saved it."""
        row = await self.session.get(StoreSetting, key, populate_existing=True)
        return dict(row.value or {}) if row else {}

    async def save_document(
        self,
        key: str,
        value: dict[str, Any],
        updated_by: Optional[str],
    ) -> StoreSetting:
        """Replace the document for a key, creating the row on first save."""
        stmt = self.upsert_insert().values(key=key, value=value, updated_by=updated_by)
        stmt = stmt.on_conflict_do_update(
            index_elements=[StoreSetting.key],
            set_={
                "value": stmt.excluded.value,
                "updated_by": stmt.excluded.updated_by,
                "updated_at": func.now(),
            },
        ).returning(StoreSetting)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one()
