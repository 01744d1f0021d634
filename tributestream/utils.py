# tributestream/utils.py

import re
import secrets
import string
from datetime import datetime, timezone

from flask import request

from tributestream.config import APP_BASE_URL
from tributestream.exceptions import ValidationError

PASSWORD_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz23456789'
PASSWORD_LENGTH = 12
MIN_PASSWORD_LENGTH = 8
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def utc_now():
    return datetime.now(timezone.utc)


def now_iso():
    """Current UTC time as an ISO-8601 string"""
    return utc_now().isoformat()


def generate_password(length=PASSWORD_LENGTH):
    """Temporary password without look-alike characters (0/O, 1/l/I)"""
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def random_suffix(length=6):
    alphabet = string.ascii_lowercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def is_valid_email(email):
    return isinstance(email, str) and bool(EMAIL_PATTERN.match(email))


def normalize_email(email):
    if email is not None and not isinstance(email, str):
        raise ValidationError('Email must be a string')
    return (email or '').strip().lower()


def get_json_body():
    """JSON request body; an empty or invalid body becomes {}"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_fields(data, *fields):
    """Raise ValidationError naming every missing or blank string field"""
    missing = [f for f in fields if data.get(f) is None or get_str(data, f) == '']
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def get_str(data, field, default=''):
    """Stripped string value of data[field]; missing or null gives default"""
    value = data.get(field)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    return value.strip()


def get_int_arg(name, default, minimum=1, maximum=None):
    """Integer query parameter clamped to [minimum, maximum]"""
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer')
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


def memorial_url(slug):
    """Public share URL of a memorial"""
    return f'{APP_BASE_URL}/memorial/{slug}'
