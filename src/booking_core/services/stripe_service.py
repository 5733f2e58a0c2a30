"""Stripe payment gateway: payment intents and refunds."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

import stripe

from booking_core.config import get_settings
from booking_core.exceptions import UpstreamError
from booking_core.services.refund_policy import to_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentResult:
    id: str
    client_secret: Optional[str]
    status: str
    amount: int


@dataclass(frozen=True)
class RefundResult:
    id: str
    status: str
    amount: int


class StripeService:
    """Narrow wrapper over the Stripe SDK used by the booking flow.

    Every SDK failure surfaces as `UpstreamError` so callers can tell a
    gateway problem apart from an internal one.
    """

    def __init__(self):
        settings = get_settings()
        self._configured = settings.stripe.is_configured

        if not self._configured:
            logger.warning(
                "Stripe is not configured. Card payments and refunds will fail. "
                "Set STRIPE_SECRET_KEY."
            )

        stripe.api_key = settings.stripe.secret_key
        stripe.api_version = settings.stripe.api_version

    def _require_configured(self) -> None:
        if not self._configured:
            raise UpstreamError("stripe", message="Payment gateway is not configured")

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentIntentResult:
        """
        Create a payment intent for `amount` (major units).

        Raises:
            UpstreamError: If Stripe rejects the request or is unreachable
        """
        self._require_configured()
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency,
                metadata=metadata or {},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {e}")
            raise UpstreamError("stripe", message=f"Failed to create payment intent: {e}") from e

        logger.info(f"Created payment intent {intent.id}")
        return PaymentIntentResult(
            id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=intent.amount,
        )

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        self._require_configured()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving payment intent {payment_intent_id}: {e}")
            raise UpstreamError("stripe", message=f"Failed to retrieve payment intent: {e}") from e

        return PaymentIntentResult(
            id=intent.id,
            client_secret=None,
            status=intent.status,
            amount=intent.amount,
        )

    async def refund(
        self, payment_intent_id: str, amount: Optional[Decimal] = None
    ) -> RefundResult:
        """
        Refund a captured payment intent.

        Args:
            payment_intent_id: Intent to refund
            amount: Partial amount in major units; None refunds the full captured amount

        Raises:
            UpstreamError: If the refund could not be created
        """
        self._require_configured()
        params = {"payment_intent": payment_intent_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)

        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding {payment_intent_id}: {e}")
            raise UpstreamError("stripe", message=f"Refund failed: {e}") from e

        logger.info(f"Created refund {refund.id} for {payment_intent_id} ({refund.status})")
        return RefundResult(id=refund.id, status=refund.status, amount=refund.amount)


def get_stripe_service() -> StripeService:
    """Factory function to create StripeService instance."""
    return StripeService()
