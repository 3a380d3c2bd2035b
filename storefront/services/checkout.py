import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional
from config import settings
from storefront.exceptions import (
    CheckoutFailed,
    CheckoutInProgress,
    CheckoutValidationError,
)
from storefront.models.cart import LineItem
from storefront.models.checkout import (
    CheckoutPayload,
    CheckoutReceipt,
    CheckoutStatus,
    CustomerRecord,
    OrderLineRecord,
    OrderRecord,
)
from storefront.services.whatsapp import send_whatsapp_message
from storefront.state.cart import Cart

logger = logging.getLogger(__name__)

MISSING_DETAILS_MESSAGE = "Please enter your name and phone number."
EMPTY_CART_MESSAGE = "Your cart is empty. Add some products before placing an order."
IN_PROGRESS_MESSAGE = "Your order is already being placed. Please wait."
RETRY_MESSAGE = "There was a problem placing your order. Please try again."

Notifier = Callable[[str, str], Awaitable[object]]

def compose_order_summary(name: str, phone: str, lines: List[LineItem], total: Decimal) -> str:
    """Human readable order text sent through the notification channel"""
    rows = "\n".join(
        f"- {line.name} x {line.quantity} (${line.line_total:.2f})" for line in lines
    )
    return f"New order from {name} ({phone}):\n\n{rows}\n\nTotal: ${total:.2f}"

class CheckoutOrchestrator:
    """
    Turns the cart into a pending order.

    ``state`` is the only admission gate: while an attempt is validating or
    submitting, any further submission is rejected. The customer, order and
    order item writes share one backend transaction, so an attempt either
    leaves all of them behind or none. The cart is cleared only after those
    writes commit.
    """

    def __init__(
        self,
        cart: Cart,
        backend,
        notify: Notifier = send_whatsapp_message,
        step_timeout: Optional[float] = None,
        notification_phone: Optional[str] = None,
    ):
        self.cart = cart
        self.backend = backend
        self.notify = notify
        self.step_timeout = step_timeout if step_timeout is not None else settings.CHECKOUT_STEP_TIMEOUT
        self.notification_phone = notification_phone or settings.ORDER_NOTIFICATION_PHONE
        self.state = CheckoutStatus.IDLE
        self.last_error: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.state in (CheckoutStatus.VALIDATING, CheckoutStatus.SUBMITTING)

    async def submit(self, payload: CheckoutPayload) -> CheckoutReceipt:
        if self.busy:
            logger.warning("[Checkout] Rejected submission while another is in progress")
            raise CheckoutInProgress(IN_PROGRESS_MESSAGE)

        self.state = CheckoutStatus.VALIDATING
        self.last_error = None
        name = (payload.customer_name or "").strip()
        phone = (payload.customer_phone or "").strip()

        if not name or not phone:
            self._fail(MISSING_DETAILS_MESSAGE)
            raise CheckoutValidationError(MISSING_DETAILS_MESSAGE)

        if self.cart.is_empty():
            self._fail(EMPTY_CART_MESSAGE)
            raise CheckoutValidationError(EMPTY_CART_MESSAGE)

        lines = self.cart.items
        total = sum((line.line_total for line in lines), Decimal("0"))
        self.state = CheckoutStatus.SUBMITTING
        logger.info(f"[Checkout] Placing order for {phone}: {len(lines)} line(s), total {total}")

        try:
            customer, order = await self._write_order(name, phone, lines, total)
        except asyncio.CancelledError:
            self._fail(RETRY_MESSAGE)
            raise
        except Exception as e:
            logger.error(f"[Checkout] Order for {phone} failed: {e!r}")
            self._fail(RETRY_MESSAGE)
            raise CheckoutFailed(RETRY_MESSAGE) from e

        summary = compose_order_summary(name, phone, lines, total)
        await self._send_summary(self.notification_phone or phone, summary)

        self.cart.clear()
        self.state = CheckoutStatus.SUCCEEDED
        logger.info(f"[Checkout] Order {order.id} placed for customer {customer.id}")

        return CheckoutReceipt(
            order_id=order.id,
            customer_id=customer.id,
            total_amount=order.total_amount,
            summary=summary,
        )

    def _fail(self, message: str):
        self.state = CheckoutStatus.FAILED
        self.last_error = message

    async def _step(self, label: str, call: Awaitable):
        try:
            return await asyncio.wait_for(call, timeout=self.step_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[Checkout] Step '{label}' timed out after {self.step_timeout}s")
            raise

    async def _write_order(self, name: str, phone: str, lines: List[LineItem], total: Decimal):
        async with self.backend.order_writer() as writer:
            customer: Optional[CustomerRecord] = await self._step(
                "look up customer", writer.find_customer_by_phone(phone)
            )
            if customer is None:
                logger.info(f"[Checkout] No customer for {phone}, creating one")
                customer = await self._step(
                    "create customer", writer.create_customer(name, phone)
                )

            order: OrderRecord = await self._step(
                "create order", writer.create_order(customer.id, total)
            )

            order_lines = [
                OrderLineRecord(
                    order_id=order.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price_at_order=line.unit_price,
                )
                for line in lines
            ]
            await self._step("create order items", writer.create_order_items(order_lines))

        return customer, order

    async def _send_summary(self, phone: str, summary: str):
        # Delivery is best effort, the order is already committed
        try:
            await asyncio.wait_for(self.notify(phone, summary), timeout=self.step_timeout)
        except Exception as e:
            logger.warning(f"[Checkout] Order notification to {phone} failed: {e!r}")
