# tributestream/livestream.py
"""Livestream booking configuration: the calculator's saved state per memorial."""
import copy
import logging

from tributestream.database import get_db, snapshot_to_dict, LIVESTREAM_CONFIGS
from tributestream.exceptions import Conflict, NotFound, PermissionDenied, ValidationError
from tributestream.memorials import get_memorial
from tributestream.permissions import can_edit_memorial
from tributestream.streaming import create_live_input, delete_live_input, get_live_input_status
from tributestream.utils import now_iso

logger = logging.getLogger(__name__)

STEPS = ('tier', 'details', 'addons', 'payment')
TIERS = ('solo', 'live', 'legacy')
PAYMENT_PENDING = 'pending'
PAYMENT_PAID = 'paid'
PAYMENT_FAILED = 'failed'


def _location():
    return {'name': '', 'address': '', 'is_unknown': False}


def _additional_service():
    return {'enabled': False, 'location': _location(), 'start_time': None, 'hours': 2}


def default_form_data(loved_one_name=''):
    return {
        'loved_one_name': loved_one_name,
        'main_service': {
            'location': _location(),
            'time': {'date': None, 'time': None, 'is_unknown': False},
            'hours': 2,
        },
        'additional_location': _additional_service(),
        'additional_day': _additional_service(),
        'funeral_director_name': '',
        'funeral_home': '',
        'addons': {
            'photography': False,
            'audio_visual_support': False,
            'live_musician': False,
            'wooden_usb_drives': 0,
        },
    }


def merge_form_data(base, overrides):
    """Overlay known keys of overrides onto base, recursing into sections"""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if key not in merged:
            continue
        if isinstance(merged[key], dict):
            if not isinstance(value, dict):
                raise ValidationError(f'form_data.{key} must be an object')
            merged[key] = merge_form_data(merged[key], value)
        else:
            merged[key] = value
    return merged


def _cents(value, field):
    try:
        return int(round(float(value) * 100))
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number')


def validate_booking(items, total):
    """Normalized booking items; each total is price x quantity and they sum to total"""
    if not isinstance(items, list):
        raise ValidationError('booking_items must be a list')
    normalized = []
    sum_cents = 0
    for index, item in enumerate(items):
        if not isinstance(item, dict) or not item.get('id') or not item.get('name'):
            raise ValidationError(f'booking_items[{index}] needs an id and a name')
        try:
            quantity = int(item.get('quantity', 1))
        except (TypeError, ValueError):
            raise ValidationError(f'booking_items[{index}].quantity must be a whole number')
        price_cents = _cents(item.get('price'), f'booking_items[{index}].price')
        total_cents = _cents(item.get('total'), f'booking_items[{index}].total')
        if quantity < 1 or price_cents < 0:
            raise ValidationError(f'booking_items[{index}] has an invalid price or quantity')
        if total_cents != price_cents * quantity:
            raise ValidationError(f'booking_items[{index}].total does not match price x quantity')
        sum_cents += total_cents
        normalized.append({
            'id': str(item['id']),
            'name': item['name'],
            'package': item.get('package', ''),
            'price': price_cents / 100,
            'quantity': quantity,
            'total': total_cents / 100,
        })
    if _cents(total, 'total') != sum_cents:
        raise ValidationError('total does not match the booking items')
    return normalized, sum_cents / 100


def _config_ref(slug):
    return get_db().collection(LIVESTREAM_CONFIGS).document(slug)


def _editable_memorial(slug, user):
    memorial = get_memorial(slug)
    if not can_edit_memorial(memorial, user):
        raise PermissionDenied('You do not have permission to manage the livestream for this memorial')
    return memorial


def get_config(slug):
    return snapshot_to_dict(_config_ref(slug).get())


def get_livestream_config(slug, user):
    _editable_memorial(slug, user)
    config = get_config(slug)
    if config is None:
        raise NotFound('Livestream configuration not found')
    return config


def has_livestream_config(slug, user):
    _editable_memorial(slug, user)
    return _config_ref(slug).get().exists


def save_livestream_config(slug, data, user):
    """Create or update the booking; a paid booking is locked"""
    memorial = _editable_memorial(slug, user)
    existing = get_config(slug)
    if existing and existing.get('payment_status') == PAYMENT_PAID:
        raise Conflict('This livestream has already been paid for and can no longer be changed')

    current_step = data.get('current_step', 'tier')
    if current_step not in STEPS:
        raise ValidationError(f"current_step must be one of: {', '.join(STEPS)}")
    selected_tier = data.get('selected_tier')
    if selected_tier is not None and selected_tier not in TIERS:
        raise ValidationError(f"selected_tier must be one of: {', '.join(TIERS)}")

    base = existing['form_data'] if existing else default_form_data(memorial.get('loved_one_name', ''))
    form_data = merge_form_data(base, data.get('form_data'))
    booking_items, total = validate_booking(data.get('booking_items', []), data.get('total', 0))

    config = {
        'memorial_id': slug,
        'user_id': user['uid'],
        'form_data': form_data,
        'booking_items': booking_items,
        'total': total,
        'current_step': current_step,
        'selected_tier': selected_tier,
        'updated_at': now_iso(),
    }
    if existing:
        _config_ref(slug).update(config)
        logger.info(f"✅ Livestream config updated for {slug}")
    else:
        config.update({'payment_status': PAYMENT_PENDING, 'created_at': config['updated_at']})
        _config_ref(slug).set(config)
        logger.info(f"✅ Livestream config created for {slug}")
    return get_config(slug)


def delete_livestream_config(slug, user):
    _editable_memorial(slug, user)
    config = get_config(slug)
    if config is None:
        raise NotFound('Livestream configuration not found')
    delete_live_input((config.get('stream') or {}).get('stream_key'))
    _config_ref(slug).delete()
    logger.info(f"🗑️ Livestream config deleted for {slug}")


def update_payment_status(slug, payment_intent_id, status):
    if status not in (PAYMENT_PAID, PAYMENT_FAILED):
        raise ValidationError('status must be paid or failed')
    if get_config(slug) is None:
        raise NotFound('Livestream configuration not found')
    updates = {'payment_status': status, 'payment_intent_id': payment_intent_id, 'updated_at': now_iso()}
    if status == PAYMENT_PAID:
        updates['paid_at'] = now_iso()
    _config_ref(slug).update(updates)
    logger.info(f"💳 Livestream payment for {slug} marked {status} ({payment_intent_id})")


def provision_stream(slug, user):
    """Live input for a paid booking; created once and reused"""
    _editable_memorial(slug, user)
    config = get_config(slug)
    if config is None:
        raise NotFound('Livestream configuration not found')
    if config.get('payment_status') != PAYMENT_PAID:
        raise ValidationError('The livestream must be paid for before streaming')
    if config.get('stream'):
        return config['stream']

    stream = create_live_input(slug)
    stream['created_at'] = now_iso()
    _config_ref(slug).update({'stream': stream, 'updated_at': now_iso()})
    return stream


def stream_status(slug, user):
    _editable_memorial(slug, user)
    config = get_config(slug)
    stream = (config or {}).get('stream')
    if not stream:
        raise NotFound('No stream has been set up for this memorial')
    return {**stream, 'status': get_live_input_status(stream['stream_key'])}


def public_stream_info(slug):
    """Playback details safe to show memorial visitors, or None"""
    stream = ((get_config(slug) or {}).get('stream')) or {}
    if not stream.get('playback_url'):
        return None
    return {'playback_url': stream['playback_url'], 'is_demo': stream.get('is_demo', False)}
