# tributestream/payments.py
import logging

import stripe

from tributestream.config import STRIPE_SECRET_KEY, DEFAULT_CURRENCY
from tributestream.exceptions import ExternalServiceError, TributeStreamError, ValidationError

logger = logging.getLogger(__name__)

STRIPE_ERROR_MESSAGES = {
    'card_declined': 'Your card was declined. Please try a different payment method.',
    'expired_card': 'Your card has expired. Please use a different card.',
    'incorrect_cvc': "Your card's security code is incorrect.",
    'incorrect_number': 'Your card number is incorrect.',
    'insufficient_funds': 'Your card has insufficient funds.',
    'processing_error': 'An error occurred while processing your card. Please try again.',
    'rate_limit': 'Too many payment requests. Please wait a moment and try again.',
}
GENERIC_PAYMENT_ERROR = 'Payment could not be processed. Please try again.'

STATUS_SUCCEEDED = 'succeeded'
FAILED_STATUSES = ('canceled', 'requires_payment_method')
METADATA_KEYS = ('memorialId', 'customerName', 'customerEmail')


class PaymentError(TributeStreamError):
    """Stripe rejected the request; message is safe to show to the customer."""
    status_code = 402

    def __init__(self, message, code=None, status_code=None):
        super().__init__(message, status_code)
        self.code = code


def to_cents(amount):
    """Dollar amount -> integer cents, rejecting non-positive values"""
    if isinstance(amount, bool):
        raise ValidationError('Invalid amount')
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError('Invalid amount')
    if value <= 0:
        raise ValidationError('Invalid amount')
    return int(round(value * 100))


def translate_stripe_error(error):
    """PaymentError for a stripe.StripeError"""
    body = (error.json_body or {}).get('error') or {}
    decline_code = body.get('decline_code')
    if decline_code in STRIPE_ERROR_MESSAGES:
        code = decline_code
    else:
        code = error.code or body.get('code')
    if isinstance(error, stripe.RateLimitError):
        code = 'rate_limit'
    message = STRIPE_ERROR_MESSAGES.get(code, GENERIC_PAYMENT_ERROR)

    if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError, stripe.APIConnectionError)) \
            or (error.http_status or 0) >= 500:
        status = 502
    elif isinstance(error, stripe.RateLimitError):
        status = 429
    elif isinstance(error, stripe.CardError):
        status = 402
    else:
        status = 400
    return PaymentError(message, code=code, status_code=status)


def _stripe_call(operation, **params):
    if not STRIPE_SECRET_KEY:
        raise ExternalServiceError('Payment service is not configured', 503)
    try:
        return operation(api_key=STRIPE_SECRET_KEY, **params)
    except stripe.StripeError as e:
        logger.error(f"❌ Stripe call failed: {type(e).__name__} {e.http_status} {e.code}: {e}")
        raise translate_stripe_error(e)


def _intent_dict(intent):
    metadata = intent.metadata or {}
    return {
        'id': intent.id,
        'status': intent.status,
        'amount': intent.amount,
        'receipt_email': intent.receipt_email,
        'metadata': {key: metadata[key] for key in METADATA_KEYS if key in metadata},
    }


def create_payment_intent(amount, memorial_id, customer_info=None, currency=DEFAULT_CURRENCY):
    """Create a Stripe PaymentIntent; returns client_secret and payment_intent_id"""
    amount_cents = to_cents(amount)
    if not memorial_id:
        raise ValidationError('Memorial ID is required')
    if not isinstance(currency or '', str):
        raise ValidationError('currency must be a string')
    customer_info = customer_info or {}
    currency = (currency or DEFAULT_CURRENCY).lower()

    params = {
        'amount': amount_cents,
        'currency': currency,
        'metadata': {
            'memorialId': memorial_id,
            'customerName': customer_info.get('name', ''),
            'customerEmail': customer_info.get('email', ''),
        },
        'automatic_payment_methods': {'enabled': True},
    }
    if customer_info.get('email'):
        params['receipt_email'] = customer_info['email']

    intent = _stripe_call(stripe.PaymentIntent.create, **params)
    logger.info(f"✅ PaymentIntent {intent.id} created for {memorial_id}: {amount_cents} {currency}")
    return {
        'client_secret': intent.client_secret,
        'payment_intent_id': intent.id,
        'amount': amount_cents,
        'currency': currency,
    }


def retrieve_payment_intent(payment_intent_id):
    if not isinstance(payment_intent_id, str) or not payment_intent_id.startswith('pi_'):
        raise ValidationError('Invalid payment intent ID')
    return _intent_dict(_stripe_call(stripe.PaymentIntent.retrieve, id=payment_intent_id))
