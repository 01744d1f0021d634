# tributestream/booking_routes.py
"""Livestream booking, payment and contact endpoints."""
import logging

from flask import Blueprint, jsonify, g

from tributestream.auth import login_required
from tributestream.email_service import send_payment_receipt, send_contact_email
from tributestream.exceptions import Conflict, ExternalServiceError, PermissionDenied, ValidationError
from tributestream.livestream import (
    get_livestream_config, has_livestream_config, save_livestream_config, delete_livestream_config,
    update_payment_status, provision_stream, stream_status, get_config,
    PAYMENT_PAID, PAYMENT_FAILED
)
from tributestream.memorials import get_memorial
from tributestream.payments import (
    create_payment_intent, retrieve_payment_intent, to_cents, STATUS_SUCCEEDED, FAILED_STATUSES
)
from tributestream.permissions import can_edit_memorial
from tributestream.utils import get_json_body, get_str

logger = logging.getLogger(__name__)

booking_bp = Blueprint('booking', __name__)


# Livestream configuration

@booking_bp.route('/livestream/<slug>/config', methods=['GET'])
@login_required
def api_get_livestream_config(slug):
    return jsonify({'config': get_livestream_config(slug, g.user)})


@booking_bp.route('/livestream/<slug>/config/exists', methods=['GET'])
@login_required
def api_has_livestream_config(slug):
    return jsonify({'exists': has_livestream_config(slug, g.user)})


@booking_bp.route('/livestream/<slug>/config', methods=['PUT', 'POST'])
@login_required
def api_save_livestream_config(slug):
    return jsonify({'config': save_livestream_config(slug, get_json_body(), g.user)})


@booking_bp.route('/livestream/<slug>/config', methods=['DELETE'])
@login_required
def api_delete_livestream_config(slug):
    delete_livestream_config(slug, g.user)
    return jsonify({'message': 'Livestream configuration deleted'})


@booking_bp.route('/livestream/<slug>/stream', methods=['POST'])
@login_required
def api_provision_stream(slug):
    return jsonify({'stream': provision_stream(slug, g.user)}), 201


@booking_bp.route('/livestream/<slug>/stream', methods=['GET'])
@login_required
def api_stream_status(slug):
    return jsonify({'stream': stream_status(slug, g.user)})


# Payments

@booking_bp.route('/payments/create-intent', methods=['POST'])
@login_required
def api_create_payment_intent():
    data = get_json_body()
    memorial_id = get_str(data, 'memorial_id')
    amount_cents = to_cents(data.get('amount'))
    if not memorial_id:
        raise ValidationError('Memorial ID is required')

    memorial = get_memorial(memorial_id)
    if not can_edit_memorial(memorial, g.user):
        raise PermissionDenied('You do not have permission to book a livestream for this memorial')
    config = get_config(memorial_id)
    if config:
        if config.get('payment_status') == PAYMENT_PAID:
            raise Conflict('This livestream has already been paid for')
        if not config.get('booking_items') or not config.get('total'):
            raise ValidationError('No livestream items have been booked')
        if to_cents(config['total']) != amount_cents:
            raise ValidationError('Amount does not match the booking total')

    customer_info = data.get('customer_info') or {}
    if not isinstance(customer_info, dict):
        raise ValidationError('customer_info must be an object')
    customer_info.setdefault('email', g.user.get('email', ''))
    customer_info.setdefault('name', g.user.get('display_name', ''))
    intent = create_payment_intent(data['amount'], memorial_id, customer_info, data.get('currency') or 'usd')
    return jsonify(intent)


@booking_bp.route('/payments/confirm', methods=['POST'])
@login_required
def api_confirm_payment():
    """Record the outcome of a PaymentIntent and email the receipt"""
    data = get_json_body()
    memorial_id = get_str(data, 'memorial_id')
    if not memorial_id:
        raise ValidationError('Memorial ID is required')
    memorial = get_memorial(memorial_id)
    if not can_edit_memorial(memorial, g.user):
        raise PermissionDenied('You do not have permission to manage payments for this memorial')

    intent = retrieve_payment_intent(data.get('payment_intent_id'))
    if intent['metadata'].get('memorialId') != memorial_id:
        raise ValidationError('Payment does not belong to this memorial')

    config = get_config(memorial_id)
    if config is None:
        raise ValidationError('No livestream booking found for this memorial')
    if config.get('payment_status') == PAYMENT_PAID:
        # a paid booking is final; only its own intent confirms again
        if config.get('payment_intent_id') != intent['id']:
            logger.warning(f"⚠️ Intent {intent['id']} confirmed for already paid booking {memorial_id}")
            raise Conflict('This livestream has already been paid for')
        return jsonify({'payment_status': PAYMENT_PAID, 'payment_intent_id': intent['id']})

    status = intent['status']
    if status == STATUS_SUCCEEDED:
        update_payment_status(memorial_id, intent['id'], PAYMENT_PAID)
        metadata = intent['metadata']
        email = intent.get('receipt_email') or metadata.get('customerEmail') or g.user.get('email')
        try:
            send_payment_receipt(
                email, metadata.get('customerName'), intent['id'], intent.get('amount'),
                config.get('booking_items', []), memorial
            )
        except ExternalServiceError as e:
            logger.error(f"❌ Receipt email for {intent['id']} failed: {e.message}")
        return jsonify({'payment_status': PAYMENT_PAID, 'payment_intent_id': intent['id']})

    if status in FAILED_STATUSES:
        update_payment_status(memorial_id, intent['id'], PAYMENT_FAILED)
        return jsonify({'payment_status': PAYMENT_FAILED, 'payment_intent_id': intent['id']}), 402

    return jsonify({'payment_status': status, 'payment_intent_id': intent['id']}), 202


# Contact

@booking_bp.route('/contact', methods=['POST'])
def api_contact():
    result = send_contact_email(get_json_body())
    return jsonify({'success': True, 'message': result['message']})
