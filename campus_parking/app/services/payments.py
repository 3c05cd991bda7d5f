"""
Payment collaborator interface.

The engine never stores payment credentials. It talks to an external
escrow provider through `PaymentGateway`; every call is retried with
exponential backoff behind a circuit breaker, and every successful call
is recorded as an immutable PaymentOperation row.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from campus_parking.app.core.config import settings
from campus_parking.app.core.exceptions import CollaboratorFailure
from campus_parking.app.core.reliability import (
    CircuitBreaker,
    CircuitOpenError,
    RetryExhaustedError,
    retry_async,
)
from campus_parking.app.models.payment_operation import PaymentOperation
from campus_parking.app.models.rental import Rental
from campus_parking.app.models.rental_enums import PaymentOperationType

logger = logging.getLogger("campus_parking.payments")


class PaymentError(CollaboratorFailure):
    """Raised by a payment gateway, or when its calls are exhausted."""

    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, collaborator="payment", details=details)


class PaymentGateway(Protocol):
    """Escrow provider. Implementations must be idempotent per intent."""

    async def authorize(self, amount: float) -> str:
        ...

    async def capture(self, intent_id: str) -> None:
        ...

    async def refund(self, intent_id: str, amount: float) -> None:
        ...

    async def transfer(self, intent_id: str, payee_id: int, amount: float) -> None:
        ...


class InMemoryPaymentGateway:
    """
    Local gateway for development and tests.

    `fail_next(operation, times)` makes the next calls of an operation
    raise PaymentError; `latency` delays every call (timeout tests).
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.intents: Dict[str, dict] = {}
        self.calls: List[Tuple[str, str, Optional[float]]] = []
        self._failures: Dict[str, int] = {}

    def fail_next(self, operation: str, times: int = 1):
        self._failures[operation] = self._failures.get(operation, 0) + times

    async def _enter(self, operation: str):
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._failures.get(operation, 0) > 0:
            self._failures[operation] -= 1
            raise PaymentError(f"Simulated {operation} failure", details={"operation": operation})

    def _intent(self, intent_id: str) -> dict:
        intent = self.intents.get(intent_id)
        if intent is None:
            raise PaymentError("Unknown payment intent", details={"intent_id": intent_id})
        return intent

    async def authorize(self, amount: float) -> str:
        await self._enter("authorize")
        intent_id = f"pi_{uuid.uuid4().hex[:16]}"
        self.intents[intent_id] = {
            "amount": amount,
            "captured": False,
            "refunded": None,
            "transferred": None,
        }
        self.calls.append(("authorize", intent_id, amount))
        return intent_id

    async def capture(self, intent_id: str) -> None:
        await self._enter("capture")
        intent = self._intent(intent_id)
        if intent["captured"]:
            return
        intent["captured"] = True
        self.calls.append(("capture", intent_id, intent["amount"]))

    async def refund(self, intent_id: str, amount: float) -> None:
        await self._enter("refund")
        intent = self._intent(intent_id)
        if intent["refunded"] is not None:
            return
        if amount > intent["amount"]:
            raise PaymentError("Refund exceeds held amount", details={"intent_id": intent_id})
        intent["refunded"] = amount
        self.calls.append(("refund", intent_id, amount))

    async def transfer(self, intent_id: str, payee_id: int, amount: float) -> None:
        await self._enter("transfer")
        intent = self._intent(intent_id)
        if intent["transferred"] is not None:
            return
        if amount > intent["amount"]:
            raise PaymentError("Transfer exceeds held amount", details={"intent_id": intent_id})
        intent["transferred"] = (payee_id, amount)
        self.calls.append(("transfer", intent_id, amount))

    def operations(self, intent_id: str) -> List[str]:
        return [op for op, iid, _ in self.calls if iid == intent_id]


class PaymentService:
    """
    Reliable access to the payment gateway.

    Does not touch rental state: callers mutate the rental only after a
    call here returns.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        breaker: Optional[CircuitBreaker] = None,
        attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.gateway = gateway
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=settings.payment_breaker_threshold,
            reset_timeout=settings.payment_breaker_reset_seconds,
        )
        self.attempts = attempts or settings.payment_max_attempts
        self.base_delay = settings.payment_backoff_base_seconds if base_delay is None else base_delay
        self.max_delay = settings.payment_backoff_max_seconds if max_delay is None else max_delay
        self.timeout = settings.payment_timeout_seconds if timeout is None else timeout

    async def _call(self, operation: PaymentOperationType, rental_id: Optional[int], func: Callable[[], Awaitable]):
        name = f"payment.{operation.value.lower()}"
        try:
            return await retry_async(
                lambda: self.breaker.call(func),
                operation=name,
                attempts=self.attempts,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                timeout=self.timeout,
                retry_on=(PaymentError, ConnectionError, OSError),
            )
        except RetryExhaustedError as e:
            raise PaymentError(
                f"Payment {operation.value.lower()} failed after {e.attempts} attempts",
                details={"rental_id": rental_id, "operation": operation.value, "error": repr(e.last_error)},
            )
        except CircuitOpenError:
            logger.warning("Payment circuit open", extra={"operation": operation.value, "rental_id": rental_id})
            raise PaymentError(
                "Payment provider unavailable",
                details={"rental_id": rental_id, "operation": operation.value},
            )

    def _record(self, db: AsyncSession, rental: Rental, operation: PaymentOperationType,
                amount: Optional[float], payee_id: Optional[int] = None):
        db.add(PaymentOperation(
            rental_id=rental.id,
            intent_id=rental.escrow_intent_id,
            operation=operation,
            amount=amount,
            payee_id=payee_id,
        ))
        logger.info(
            "Payment %s recorded", operation.value,
            extra={"rental_id": rental.id, "amount": amount, "payee_id": payee_id},
        )

    async def authorize(self, db: AsyncSession, rental: Rental) -> str:
        """Place a hold for the rental price. Sets the rental's intent id."""
        intent_id = await self._call(
            PaymentOperationType.AUTHORIZE, rental.id,
            lambda: self.gateway.authorize(rental.price),
        )
        rental.escrow_intent_id = intent_id
        self._record(db, rental, PaymentOperationType.AUTHORIZE, rental.price)
        return intent_id

    async def capture(self, db: AsyncSession, rental: Rental) -> None:
        await self._call(
            PaymentOperationType.CAPTURE, rental.id,
            lambda: self.gateway.capture(rental.escrow_intent_id),
        )
        self._record(db, rental, PaymentOperationType.CAPTURE, rental.price)

    async def refund(self, db: AsyncSession, rental: Rental, amount: float) -> None:
        await self._call(
            PaymentOperationType.REFUND, rental.id,
            lambda: self.gateway.refund(rental.escrow_intent_id, amount),
        )
        self._record(db, rental, PaymentOperationType.REFUND, amount, payee_id=rental.renter_id)

    async def transfer(self, db: AsyncSession, rental: Rental, amount: float) -> None:
        await self._call(
            PaymentOperationType.TRANSFER, rental.id,
            lambda: self.gateway.transfer(rental.escrow_intent_id, rental.owner_id, amount),
        )
        self._record(db, rental, PaymentOperationType.TRANSFER, amount, payee_id=rental.owner_id)
