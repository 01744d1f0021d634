# tributestream/memorials.py
import logging
from datetime import datetime
from urllib.parse import quote

from botocore.exceptions import ClientError
from firebase_admin import firestore

from tributestream.auth import delete_auth_user
from tributestream.config import MEMORIAL_DEFAULT_PUBLIC, SEARCH_RESULT_LIMIT
from tributestream.database import (
    get_db, memorial_ref, snapshot_to_dict, delete_collection,
    MEMORIALS, PHOTOS, FAMILY, FOLLOWERS, LIVESTREAM_CONFIGS, USERS
)
from tributestream.email_service import send_credentials_email
from tributestream.exceptions import ExternalServiceError, NotFound, PermissionDenied, ValidationError
from tributestream.permissions import (
    can_view_memorial, can_edit_memorial, can_delete_memorial, is_approved_funeral_director
)
from tributestream.slugs import (
    generate_memorial_slug, reserve_memorial, create_memorial_document, validate_custom_slug,
    is_slug_available, SLUG_PATTERN, MAX_SLUG_LENGTH, FUNERAL_DIRECTOR_PREFIX, RESERVED_SLUGS
)
from tributestream.storage import delete_object
from tributestream.streaming import delete_live_input
from tributestream.users import create_owner_account, promote_to_owner
from tributestream.utils import now_iso, get_str, is_valid_email, memorial_url, normalize_email, require_fields

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('loved_one_name', 'biography', 'location')
DATE_FIELDS = ('date_of_birth', 'date_of_passing')
FLAG_FIELDS = ('is_public', 'allow_comments', 'allow_photos', 'moderate_content')
SERVICE_FIELDS = ('service_date', 'service_start_time', 'service_end_time', 'service_days')
MAX_SERVICE_DAYS = 7
SHARE_DESCRIPTION_LENGTH = 100


def _parse_date(value, field):
    if not value:
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date().isoformat()
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def _parse_time(value, field):
    if not value:
        return None
    try:
        return datetime.strptime(value, '%H:%M').strftime('%H:%M')
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a time in HH:MM format')


def _clean_fields(data, allow_service=False):
    """Validated subset of editable memorial fields present in data"""
    cleaned = {}
    for field in TEXT_FIELDS:
        if field in data:
            cleaned[field] = get_str(data, field)
    if 'loved_one_name' in cleaned and not cleaned['loved_one_name']:
        raise ValidationError("Loved one's name is required")
    for field in DATE_FIELDS:
        if field in data:
            cleaned[field] = _parse_date(data[field], field)
    for field in FLAG_FIELDS:
        if field in data:
            if not isinstance(data[field], bool):
                raise ValidationError(f'{field} must be true or false')
            cleaned[field] = data[field]
    if allow_service:
        if 'service_date' in data:
            cleaned['service_date'] = _parse_date(data['service_date'], 'service_date')
        for field in ('service_start_time', 'service_end_time'):
            if field in data:
                cleaned[field] = _parse_time(data[field], field)
        if 'service_days' in data:
            try:
                days = int(data['service_days'])
            except (TypeError, ValueError):
                raise ValidationError('service_days must be a number')
            if not 1 <= days <= MAX_SERVICE_DAYS:
                raise ValidationError(f'service_days must be between 1 and {MAX_SERVICE_DAYS}')
            cleaned['service_days'] = days
    return cleaned


def _check_dates(record):
    born, passed = record.get('date_of_birth'), record.get('date_of_passing')
    if born and passed and born > passed:
        raise ValidationError('Date of birth must be before date of passing')


def new_memorial_record(data, creator_uid, creator_name, creator_email, creator_phone=''):
    """Memorial document for a new memorial with counters at zero"""
    now = now_iso()
    record = {
        'loved_one_name': '',
        'biography': '',
        'location': '',
        'date_of_birth': None,
        'date_of_passing': None,
        'is_public': MEMORIAL_DEFAULT_PUBLIC,
        'allow_comments': True,
        'allow_photos': True,
        'moderate_content': False,
        'creator_uid': creator_uid,
        'creator_name': creator_name,
        'creator_email': creator_email,
        'creator_phone': creator_phone or '',
        'funeral_director_id': None,
        'is_professional_service': False,
        'view_count': 0,
        'photo_count': 0,
        'follower_count': 0,
        'created_at': now,
        'updated_at': now,
    }
    record.update(_clean_fields(data))
    if not record['loved_one_name']:
        raise ValidationError("Loved one's name is required")
    _check_dates(record)
    return record


def get_memorial(slug):
    memorial = snapshot_to_dict(memorial_ref(slug).get())
    if memorial is None:
        raise NotFound('Memorial not found')
    return memorial


def get_viewable_memorial(slug, user):
    """Memorial the user may see; private memorials look missing to everyone else"""
    memorial = get_memorial(slug)
    if not can_view_memorial(memorial, user):
        raise NotFound('Memorial not found')
    return memorial


def view_memorial(slug, user):
    """Fetch for display and count the view"""
    memorial = get_viewable_memorial(slug, user)
    memorial_ref(slug).update({'view_count': firestore.Increment(1)})
    memorial['view_count'] = memorial.get('view_count', 0) + 1
    return memorial


def check_url_available(url):
    url = (url or '').strip().lower()
    if not url:
        raise ValidationError('url parameter is required')
    if len(url) > MAX_SLUG_LENGTH or not SLUG_PATTERN.match(url) or url in RESERVED_SLUGS:
        return False
    return is_slug_available(url)


def _store(record, custom_url=None, prefix=''):
    if custom_url:
        return create_memorial_document(validate_custom_slug(custom_url), record)
    return reserve_memorial(generate_memorial_slug(record['loved_one_name'], prefix), record)


def create_memorial(data, user):
    """Memorial owned by the signed-in user"""
    record = new_memorial_record(
        data, user['uid'], user.get('display_name', ''), user.get('email', ''), user.get('phone', '')
    )
    slug = _store(record, get_str(data, 'custom_url'))
    promote_to_owner(user)
    logger.info(f"✅ Memorial {slug} created by {user['uid']}")
    return get_memorial(slug)


def _create_for_new_owner(data, prefix='', extra=None, funeral_home=None):
    require_fields(data, 'loved_one_name', 'creator_name', 'creator_email', 'creator_phone')
    email = normalize_email(data['creator_email'])
    if not is_valid_email(email):
        raise ValidationError('Invalid email address')
    # validate before the account exists
    record = new_memorial_record(data, None, get_str(data, 'creator_name'), email, get_str(data, 'creator_phone'))
    record.update(extra or {})
    custom_url = get_str(data, 'custom_url')

    profile, password = create_owner_account(record['creator_name'], email, record['creator_phone'])
    record['creator_uid'] = profile['uid']
    try:
        slug = _store(record, custom_url, prefix)
    except Exception:
        logger.error(f"❌ Memorial creation failed, removing account {profile['uid']}")
        get_db().collection(USERS).document(profile['uid']).delete()
        delete_auth_user(profile['uid'])
        raise

    memorial = get_memorial(slug)
    try:
        send_credentials_email(email, password, memorial, funeral_home)
        email_sent = True
    except ExternalServiceError as e:
        logger.error(f"❌ Credentials email to {email} failed: {e.message}")
        email_sent = False

    logger.info(f"✅ Memorial {slug} created with owner {profile['uid']}")
    return {
        'memorial': memorial,
        'custom_url': slug,
        'memorial_url': memorial_url(slug),
        'user_id': profile['uid'],
        'email': email,
        'generated_password': password,
        'email_sent': email_sent,
    }


def create_memorial_with_owner(data):
    """Public tribute form: creates the owner account and the memorial together"""
    return _create_for_new_owner(data)


def create_funeral_director_memorial(data, director):
    """Memorial arranged by an approved funeral director for a family"""
    if not is_approved_funeral_director(director):
        raise PermissionDenied('Only approved funeral directors can create memorials for families')
    service = _clean_fields(data, allow_service=True)
    extra = {
        'funeral_director_id': director['uid'],
        'funeral_director_name': director.get('display_name', ''),
        'funeral_home_name': director.get('funeral_home_name', ''),
        'service_date': service.get('service_date'),
        'service_start_time': service.get('service_start_time'),
        'service_end_time': service.get('service_end_time'),
        'service_days': service.get('service_days', 1),
        'is_professional_service': True,
    }
    return _create_for_new_owner(data, FUNERAL_DIRECTOR_PREFIX, extra, funeral_home=extra)


def update_memorial(slug, data, user):
    memorial = get_memorial(slug)
    if not can_edit_memorial(memorial, user):
        raise PermissionDenied('You do not have permission to edit this memorial')
    updates = _clean_fields(data, allow_service=memorial.get('is_professional_service', False))
    if not updates:
        raise ValidationError('Nothing to update')
    _check_dates({**memorial, **updates})
    updates['updated_at'] = now_iso()
    memorial_ref(slug).update(updates)
    logger.info(f"✅ Memorial {slug} updated by {user['uid']}: {sorted(updates)}")
    memorial.update(updates)
    return memorial


def delete_memorial(slug, user):
    """Delete the memorial with its photos (S3 objects too), family, followers and livestream"""
    memorial = get_memorial(slug)
    if not can_delete_memorial(memorial, user):
        raise PermissionDenied('Only the memorial owner or an admin can delete this memorial')

    ref = memorial_ref(slug)
    for doc in ref.collection(PHOTOS).stream():
        s3_key = (doc.to_dict() or {}).get('s3_key')
        if s3_key:
            try:
                delete_object(s3_key)
            except ClientError as e:
                logger.warning(f"S3 delete failed for {s3_key}: {e}")

    summary = {
        'photos': delete_collection(ref.collection(PHOTOS)),
        'family_members': delete_collection(ref.collection(FAMILY)),
        'followers': delete_collection(ref.collection(FOLLOWERS)),
        'livestream_config': False,
    }

    config_ref = get_db().collection(LIVESTREAM_CONFIGS).document(slug)
    config = snapshot_to_dict(config_ref.get())
    if config:
        delete_live_input((config.get('stream') or {}).get('stream_key'))
        config_ref.delete()
        summary['livestream_config'] = True

    ref.delete()
    logger.info(f"🗑️ Memorial {slug} deleted by {user['uid']}: {summary}")
    return summary


def list_user_memorials(uid):
    query = get_db().collection(MEMORIALS).where('creator_uid', '==', uid)
    memorials = [snapshot_to_dict(doc) for doc in query.stream()]
    return sorted(memorials, key=lambda m: m.get('created_at', ''), reverse=True)


def search_memorials(q, limit=SEARCH_RESULT_LIMIT):
    """Public memorials whose name or biography contains q, most viewed first"""
    term = (q or '').strip().lower()
    if not term:
        raise ValidationError('Search query is required')
    matches = []
    for doc in get_db().collection(MEMORIALS).where('is_public', '==', True).stream():
        memorial = snapshot_to_dict(doc)
        haystack = f"{memorial.get('loved_one_name', '')} {memorial.get('biography', '')}".lower()
        if term in haystack:
            matches.append(memorial)
    matches.sort(key=lambda m: m.get('view_count', 0), reverse=True)
    return matches[:limit]


def recent_memorials(limit=10):
    query = (
        get_db().collection(MEMORIALS)
        .where('is_public', '==', True)
        .order_by('created_at', direction=firestore.Query.DESCENDING)
        .limit(limit)
    )
    return [snapshot_to_dict(doc) for doc in query.stream()]


def share_links(memorial):
    url = memorial_url(memorial['id'])
    name = memorial.get('loved_one_name', '')
    description = (memorial.get('biography') or '').strip()
    if len(description) > SHARE_DESCRIPTION_LENGTH:
        description = description[:SHARE_DESCRIPTION_LENGTH].rstrip() + '...'
    text = f'Remember {name} - {description}' if description else f'Remember {name}'
    email_body = f'{text}\n\n{url}'
    return {
        'url': url,
        'facebook': f'https://www.facebook.com/sharer/sharer.php?u={quote(url, safe="")}',
        'twitter': f'https://twitter.com/intent/tweet?url={quote(url, safe="")}&text={quote(text, safe="")}',
        'linkedin': f'https://www.linkedin.com/sharing/share-offsite/?url={quote(url, safe="")}',
        'email': f'mailto:?subject={quote(f"Memorial for {name}", safe="")}&body={quote(email_body, safe="")}',
        'sms': f'sms:?body={quote(f"{text} {url}", safe="")}',
    }
