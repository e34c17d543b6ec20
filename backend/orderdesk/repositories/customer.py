"""
Customer repository for data access operations.
"""
from typing import Optional
from uuid import uuid4

from sqlalchemy import select

from orderdesk.core.logging import get_logger
from orderdesk.models.customer import Customer
from orderdesk.repositories.base import BaseRepository

logger = get_logger(__name__)


class CustomerRepository(BaseRepository[Customer]):
    """Repository for Customer model operations."""

    model = Customer

    async def get_by_phone(self, phone: str) -> Optional[Customer]:
        stmt = select(Customer).where(Customer.phone == phone)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_or_update(self, name: str, phone: str) -> tuple[Customer, bool]:
        """
        Find a customer by phone or create one, in a single INSERT ... ON CONFLICT
        so concurrent checkouts by a new phone number share one row.
        The most recently supplied name replaces the stored one.
        Returns (customer, created) tuple.
        """
        new_id = uuid4()
        stmt = self.upsert_insert().values(id=new_id, name=name, phone=phone)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Customer.phone],
            set_={"name": stmt.excluded.name},
        ).returning(Customer)

        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        customer = result.scalar_one()
        created = customer.id == new_id
        logger.info("Customer upserted", customer_id=str(customer.id), phone=phone, created=created)
        return customer, created
