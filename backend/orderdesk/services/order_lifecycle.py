"""
Order lifecycle: the fulfillment state machine and staff acceptance.

    Pending -> Preparing -> Ready -> Delivered
    any non-terminal state -> Cancelled

Acceptance is a separate, one-way flag. Accepting a Pending order moves it
to Preparing; accepting an order that is already further along leaves its
status alone.
"""
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.core.exceptions import (
    AlreadyAccepted,
    IllegalTransition,
    OrderNotFound,
    ValidationError,
)
from orderdesk.core.logging import get_logger
from orderdesk.core.timeutils import as_utc, utcnow
from orderdesk.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from orderdesk.repositories.customer import CustomerRepository
from orderdesk.repositories.order import OrderRepository
from orderdesk.services.checkout import BuyerInfo, CartSnapshot

logger = get_logger(__name__)

LEGAL_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in LEGAL_TRANSITIONS[current]


def _awaiting_gateway_payment(order: Order) -> bool:
    return (
        order.payment_method == PaymentMethod.GATEWAY.value
        and order.payment_status != PaymentStatus.PAID.value
    )


class OrderLifecycle:
    """Staff-driven fulfillment transitions plus customer placement and cancellation."""

    def __init__(
        self,
        session: AsyncSession,
        cancel_window: timedelta = timedelta(seconds=30),
    ) -> None:
        self.orders = OrderRepository(session)
        self.customers = CustomerRepository(session)
        self.cancel_window = cancel_window

    async def _get(self, order_id: UUID) -> Order:
        order = await self.orders.refresh_by_id(order_id)
        if order is None:
            raise OrderNotFound(str(order_id))
        return order

    async def place_order(
        self,
        buyer: BuyerInfo,
        cart: CartSnapshot,
        *,
        currency: str,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> Order:
        """
        Create an order paid at the counter or by UPI transfer.

        Gateway orders go through the payment reconciler instead.
        """
        if payment_method == PaymentMethod.GATEWAY:
            raise ValidationError("Gateway orders are created through payment initiation")
        customer, _ = await self.customers.create_or_update(name=buyer.name, phone=buyer.phone)
        order = await self.orders.create(
            {
                **cart.order_fields(currency),
                "customer_id": customer.id,
                "payment_method": payment_method.value,
                "payment_status": PaymentStatus.PENDING.value,
                "status": OrderStatus.PENDING.value,
            }
        )
        logger.info(
            "Order placed",
            order_id=str(order.id),
            payment_method=payment_method.value,
            total=str(order.total_amount),
        )
        return order

    async def accept(self, order_id: UUID, now: Optional[datetime] = None) -> Order:
        """
        Accept an order into active fulfillment.

        Raises:
            OrderNotFound: unknown order id
            AlreadyAccepted: the order was accepted before (including by a concurrent call)
            IllegalTransition: the order was cancelled, or is a gateway order not yet paid
        """
        existing = await self._get(order_id)
        self._check_acceptable(existing)

        order = await self.orders.accept(order_id, now or utcnow())
        if order is None:
            # Lost a race with another accept, a cancel or a payment write
            self._check_acceptable(await self._get(order_id))
            raise IllegalTransition(existing.status, "accepted")

        logger.info("Order accepted", order_id=str(order_id), status=order.status)
        return order

    @staticmethod
    def _check_acceptable(order: Order) -> None:
        if order.is_accepted:
            raise AlreadyAccepted(str(order.id))
        if order.status == OrderStatus.CANCELLED.value:
            raise IllegalTransition(order.status, "accepted", "Cancelled orders cannot be accepted")
        if _awaiting_gateway_payment(order):
            logger.warning(
                "Accept refused for unpaid gateway order",
                order_id=str(order.id),
                payment_status=order.payment_status,
            )
            raise IllegalTransition(
                order.status, "accepted", "Online payment has not been completed for this order"
            )

    async def update_status(self, order_id: UUID, new_status: OrderStatus) -> Order:
        """Move an order to one of its legal next states."""
        existing = await self._get(order_id)
        current = OrderStatus(existing.status)

        if not can_transition(current, new_status):
            logger.warning(
                "Illegal status transition",
                order_id=str(order_id),
                current=current.value,
                requested=new_status.value,
            )
            raise IllegalTransition(current.value, new_status.value)
        if new_status != OrderStatus.CANCELLED and _awaiting_gateway_payment(existing):
            raise IllegalTransition(
                current.value, new_status.value, "Online payment has not been completed for this order"
            )

        order = await self.orders.transition_status(
            order_id,
            current,
            new_status,
            extra=[] if new_status == OrderStatus.CANCELLED else [self.orders.payment_settled()],
        )
        if order is None:
            fresh = await self._get(order_id)
            raise IllegalTransition(fresh.status, new_status.value)

        logger.info(
            "Order status updated",
            order_id=str(order_id),
            previous=current.value,
            status=order.status,
        )
        return order

    async def cancel_by_customer(self, order_id: UUID, now: Optional[datetime] = None) -> Order:
        """Customers may cancel an unaccepted order shortly after placing it."""
        existing = await self._get(order_id)
        now = as_utc(now or utcnow())
        current = OrderStatus(existing.status)

        if existing.is_accepted:
            raise IllegalTransition(
                current.value, OrderStatus.CANCELLED.value, "Order already accepted, cannot cancel"
            )
        if not can_transition(current, OrderStatus.CANCELLED):
            raise IllegalTransition(current.value, OrderStatus.CANCELLED.value)
        if now - as_utc(existing.created_at) > self.cancel_window:
            raise IllegalTransition(
                current.value, OrderStatus.CANCELLED.value, "Cancellation window expired"
            )

        order = await self.orders.transition_status(
            order_id,
            current,
            OrderStatus.CANCELLED,
            extra=[Order.is_accepted.is_(False)],
        )
        if order is None:
            raise IllegalTransition(
                current.value, OrderStatus.CANCELLED.value, "Order changed while cancelling"
            )

        logger.info("Order cancelled by customer", order_id=str(order_id))
        return order

    async def track(self, order_id: UUID) -> Order:
        return await self._get(order_id)

    async def list_for_staff(self, *, skip: int = 0, limit: int = 100) -> list[Order]:
        return await self.orders.list_for_staff(skip=skip, limit=limit)
