"""
Order repository.

Every mutation is a single conditional UPDATE ... RETURNING keyed by the
order's identity, so concurrent writers are serialized by the database and
a writer whose precondition no longer holds gets None back instead of
overwriting someone else's change.
"""
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import ColumnElement, String, case, func, literal, or_, select, update

from orderdesk.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from orderdesk.repositories.base import BaseRepository


def _status_values(statuses: Iterable[PaymentStatus | OrderStatus]) -> list[str]:
    return [s.value for s in statuses]


class OrderRepository(BaseRepository[Order]):
    """Repository for Order model operations."""

    model = Order

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        stmt = select(Order).where(Order.gateway_order_id == gateway_order_id)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def refresh_by_id(self, order_id: UUID) -> Optional[Order]:
        """Re-read an order, bypassing the identity map."""
        return await self.session.get(Order, order_id, populate_existing=True)

    async def update_where(
        self,
        *criteria: ColumnElement[bool],
        values: dict[str, Any],
    ) -> Optional[Order]:
        """Atomic conditional update returning the new row, or None if nothing matched."""
        stmt = (
            update(Order)
            .where(*criteria)
            .values(**values)
            .returning(Order)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    # Lifecycle

    @staticmethod
    def payment_settled() -> ColumnElement[bool]:
        """Orders staff may work on: anything but a gateway order that is not yet paid."""
        return or_(
            Order.payment_method != PaymentMethod.GATEWAY.value,
            Order.payment_status == PaymentStatus.PAID.value,
        )

    async def accept(self, order_id: UUID, accepted_at: datetime) -> Optional[Order]:
        """Mark accepted once; a Pending order moves on to Preparing. Gateway orders must be paid."""
        return await self.update_where(
            Order.id == order_id,
            Order.is_accepted.is_(False),
            Order.status != OrderStatus.CANCELLED.value,
            self.payment_settled(),
            values={
                "is_accepted": True,
                "accepted_at": accepted_at,
                "status": case(
                    (Order.status == OrderStatus.PENDING.value, OrderStatus.PREPARING.value),
                    else_=Order.status,
                ),
            },
        )

    async def transition_status(
        self,
        order_id: UUID,
        from_status: OrderStatus,
        to_status: OrderStatus,
        *,
        extra: Iterable[ColumnElement[bool]] = (),
    ) -> Optional[Order]:
        return await self.update_where(
            Order.id == order_id,
            Order.status == from_status.value,
            *extra,
            values={"status": to_status.value},
        )

    async def list_for_staff(self, *, skip: int = 0, limit: int = 100) -> list[Order]:
        """Staff board: hide gateway orders whose payment never completed."""
        stmt = (
            select(Order)
            .where(
                or_(
                    Order.payment_method != PaymentMethod.GATEWAY.value,
                    Order.payment_status.in_(
                        _status_values([PaymentStatus.PAID, PaymentStatus.FAILED])
                    ),
                )
            )
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Payment

    async def attach_gateway_order(self, order_id: UUID, gateway_order_id: str) -> Optional[Order]:
        return await self.update_where(
            Order.id == order_id,
            Order.gateway_order_id.is_(None),
            values={"gateway_order_id": gateway_order_id},
        )

    async def mark_paid(
        self,
        gateway_order_id: str,
        *,
        allowed_from: Iterable[PaymentStatus],
        verified_at: datetime,
        payment_id: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> Optional[Order]:
        values: dict[str, Any] = {
            "payment_status": PaymentStatus.PAID.value,
            "payment_verified_at": verified_at,
            # order.paid events carry no payment id; keep whatever we have
            "gateway_payment_id": func.coalesce(literal(payment_id, String), Order.gateway_payment_id),
        }
        if signature is not None:
            values["gateway_signature"] = signature

        return await self.update_where(
            Order.gateway_order_id == gateway_order_id,
            Order.payment_status.in_(_status_values(allowed_from)),
            values=values,
        )

    async def mark_failed(
        self,
        gateway_order_id: str,
        *,
        allowed_from: Iterable[PaymentStatus],
        payment_id: Optional[str] = None,
    ) -> Optional[Order]:
        return await self.update_where(
            Order.gateway_order_id == gateway_order_id,
            Order.payment_status.in_(_status_values(allowed_from)),
            values={
                "payment_status": PaymentStatus.FAILED.value,
                "gateway_payment_id": func.coalesce(literal(payment_id, String), Order.gateway_payment_id),
            },
        )

    async def flag_anomaly(self, gateway_order_id: str, note: str) -> Optional[Order]:
        """Record the latest conflicting signal for manual review."""
        return await self.update_where(
            Order.gateway_order_id == gateway_order_id,
            values={"payment_anomaly": note},
        )

    async def force_paid(self, order_id: UUID, note: Optional[str], verified_at: datetime) -> Optional[Order]:
        """Staff override: Paid regardless of current payment status."""
        values: dict[str, Any] = {
            "payment_status": PaymentStatus.PAID.value,
            "payment_verified_at": verified_at,
        }
        if note:
            annotation = f"Admin verified: {note}"
            values["customer_note"] = case(
                (func.coalesce(Order.customer_note, "") == "", literal(annotation)),
                else_=Order.customer_note + literal(f" | {annotation}"),
            )
        return await self.update_where(Order.id == order_id, values=values)

    # Manual UPI transfers

    async def attach_payment_proof(
        self,
        order_id: UUID,
        proof_url: str,
        submitted_at: datetime,
        *,
        allowed_from: Iterable[PaymentStatus],
    ) -> Optional[Order]:
        """Store a (re)submitted transfer proof and wait for review."""
        return await self.update_where(
            Order.id == order_id,
            Order.payment_method == PaymentMethod.UPI.value,
            Order.payment_status.in_(_status_values(allowed_from)),
            Order.status != OrderStatus.CANCELLED.value,
            values={
                "payment_status": PaymentStatus.INITIATED.value,
                "payment_proof_url": proof_url,
                "payment_proof_submitted_at": submitted_at,
                "payment_proof_verified": None,
                "payment_proof_reviewed_at": None,
                "payment_proof_reviewed_by": None,
            },
        )

    async def review_payment_proof(
        self,
        order_id: UUID,
        *,
        approved: bool,
        reviewed_by: Optional[str],
        reviewed_at: datetime,
    ) -> Optional[Order]:
        """Settle a proof awaiting review: Paid when approved, Failed otherwise."""
        values: dict[str, Any] = {
            "payment_status": (PaymentStatus.PAID if approved else PaymentStatus.FAILED).value,
            "payment_proof_verified": approved,
            "payment_proof_reviewed_at": reviewed_at,
            "payment_proof_reviewed_by": reviewed_by,
        }
        if approved:
            values["payment_verified_at"] = reviewed_at
        return await self.update_where(
            Order.id == order_id,
            Order.payment_method == PaymentMethod.UPI.value,
            Order.payment_status == PaymentStatus.INITIATED.value,
            Order.payment_proof_url.is_not(None),
            values=values,
        )
