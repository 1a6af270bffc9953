"""
Payment gateway — the only module that talks to Stripe.

The checkout initiator and the settlement handler depend on the small
interface below instead of on the stripe library directly:

    create_payment_intent(...)  -> PaymentIntentResult
    cancel_payment_intent(id)   -> bool
    verify_webhook(payload, signature_header) -> dict

Routers obtain the gateway through the get_payment_gateway() dependency,
which tests override with an in-memory fake so no network call is made.

Blocking I/O:
  stripe-python's request methods are synchronous. They are run on the
  threadpool (run_in_threadpool) so a slow processor call never blocks the
  event loop serving other requests.

Webhook verification:
  Stripe signs each webhook body with the endpoint's signing secret:
      Stripe-Signature: t=<unix ts>,v1=<hex HMAC-SHA256(secret, "<t>.<body>")>
  WebhookSignature.verify_header() checks the HMAC in constant time and
  rejects timestamps older than the tolerance (replay protection). The body
  is parsed only after it verifies.
"""

import json
import logging
from dataclasses import dataclass

import stripe
from starlette.concurrency import run_in_threadpool

from carbon_market.config import settings
from carbon_market.exceptions import InvalidSignatureError, UpstreamPaymentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentResult:
    """The parts of a Stripe PaymentIntent the checkout flow needs."""
    id: str
    client_secret: str


class StripeGateway:
    """Payment gateway backed by the Stripe API."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        tolerance_seconds: int = 300,
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance_seconds

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        payment_method: str | None = None,
    ) -> PaymentIntentResult:
        """
        Create a PaymentIntent for `amount_cents` in `currency`.

        Raises:
            UpstreamPaymentError: If Stripe rejects the request or is unreachable.
        """
        params = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "metadata": metadata,
            "api_key": self._api_key,
        }
        if payment_method:
            params["payment_method_types"] = [payment_method]

        try:
            intent = await run_in_threadpool(stripe.PaymentIntent.create, **params)
        except stripe.StripeError as e:
            logger.error("Stripe PaymentIntent.create failed: %s", e.user_message or e)
            raise UpstreamPaymentError("Payment processor request failed") from e

        return PaymentIntentResult(id=intent.id, client_secret=intent.client_secret)

    async def cancel_payment_intent(self, payment_intent_id: str) -> bool:
        """
        Ask Stripe to cancel a PaymentIntent.

        Returns:
            True if the intent is now canceled, False if Stripe refused
            (typically because the payment already succeeded).

        Raises:
            UpstreamPaymentError: If Stripe could not be reached.
        """
        try:
            await run_in_threadpool(
                stripe.PaymentIntent.cancel,
                payment_intent_id,
                api_key=self._api_key,
            )
        except stripe.InvalidRequestError as e:
            logger.info("Stripe refused to cancel %s: %s", payment_intent_id, e.user_message or e)
            return False
        except stripe.StripeError as e:
            logger.error("Stripe PaymentIntent.cancel failed for %s: %s", payment_intent_id, e)
            raise UpstreamPaymentError("Payment processor request failed") from e
        return True

    def verify_webhook(self, payload: bytes, signature_header: str | None) -> dict:
        """
        Verify a webhook's signature and return the parsed event.

        Raises:
            InvalidSignatureError: If the header is missing, the signature or
                timestamp does not verify, or the body is not a JSON event.
        """
        if not signature_header:
            raise InvalidSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature_header, self._webhook_secret, self._tolerance
            )
            event = json.loads(body)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise InvalidSignatureError() from e
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning("Webhook payload is not valid JSON: %s", e)
            raise InvalidSignatureError("Invalid payload") from e

        if not isinstance(event, dict) or "id" not in event or "type" not in event:
            raise InvalidSignatureError("Invalid payload")
        return event


_gateway: StripeGateway | None = None


def get_payment_gateway() -> StripeGateway:
    """FastAPI dependency returning the process-wide Stripe gateway."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway(
            api_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance_seconds=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    return _gateway
