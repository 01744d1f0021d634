# tributestream/users.py
import logging

from tributestream.auth import create_auth_user, update_auth_user, delete_auth_user
from tributestream.database import get_db, snapshot_to_dict, USERS, MEMORIALS
from tributestream.exceptions import Conflict, NotFound, ValidationError
from tributestream.permissions import ROLE_VIEWER, ROLE_OWNER, ROLE_FUNERAL_DIRECTOR, SELF_REGISTER_ROLES
from tributestream.utils import (
    now_iso, generate_password, get_str, is_valid_email, normalize_email, require_fields, MIN_PASSWORD_LENGTH
)

logger = logging.getLogger(__name__)

FUNERAL_HOME_FIELDS = (
    'funeral_home_name', 'funeral_home_address', 'funeral_home_email',
    'funeral_home_phone', 'personal_phone'
)
PROFILE_FIELDS = ('display_name', 'phone')


def _users():
    return get_db().collection(USERS)


def get_user(uid):
    return snapshot_to_dict(_users().document(uid).get())


def find_user_by_email(email):
    email = normalize_email(email)
    for doc in _users().where('email', '==', email).limit(1).stream():
        return snapshot_to_dict(doc)
    return None


def validate_password(password):
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')


def _create_account(email, password, display_name, role, extra=None):
    """Auth account plus users/{uid} profile; the account is removed if the profile write fails"""
    uid = create_auth_user(email, password, display_name)
    now = now_iso()
    profile = {
        'uid': uid,
        'email': email,
        'display_name': display_name,
        'phone': '',
        'role': role,
        'approved': role != ROLE_FUNERAL_DIRECTOR,
        'email_verified': False,
        'created_at': now,
        'updated_at': now,
    }
    profile.update(extra or {})
    try:
        _users().document(uid).set(profile)
    except Exception:
        logger.error(f"❌ Profile write failed for {uid}, removing auth account")
        delete_auth_user(uid)
        raise
    logger.info(f"✅ User registered: {uid} ({role})")
    return profile


def register_user(data):
    """Self registration as a Viewer or a (not yet approved) FuneralDirector"""
    require_fields(data, 'email', 'password', 'display_name')
    email = normalize_email(data['email'])
    if not is_valid_email(email):
        raise ValidationError('Invalid email address')
    validate_password(data['password'])

    role = data.get('role') or ROLE_VIEWER
    if role not in SELF_REGISTER_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(SELF_REGISTER_ROLES)}")

    extra = {'phone': get_str(data, 'phone')}
    if role == ROLE_FUNERAL_DIRECTOR:
        require_fields(data, *FUNERAL_HOME_FIELDS)
        if not is_valid_email(get_str(data, 'funeral_home_email')):
            raise ValidationError('Invalid funeral home email address')
        extra.update({field: get_str(data, field) for field in FUNERAL_HOME_FIELDS})

    return _create_account(email, data['password'], get_str(data, 'display_name'), role, extra)


def create_owner_account(name, email, phone):
    """Owner account with a generated password; returns (profile, password)"""
    password = generate_password()
    profile = _create_account(normalize_email(email), password, name, ROLE_OWNER, {'phone': phone or ''})
    return profile, password


def promote_to_owner(user):
    """Viewers become Owners once they create a memorial.

    Signed-in users without a profile document get one written here.
    """
    if user.get('role') != ROLE_VIEWER:
        return
    ref = _users().document(user['uid'])
    now = now_iso()
    updates = {'role': ROLE_OWNER, 'updated_at': now}
    if not ref.get().exists:
        updates.update({
            'uid': user['uid'],
            'email': user.get('email', ''),
            'display_name': user.get('display_name', ''),
            'phone': '',
            'approved': True,
            'email_verified': False,
            'created_at': now,
        })
    ref.set(updates, merge=True)
    logger.info(f"⬆️ {user['uid']} promoted to {ROLE_OWNER}")


def get_profile(uid):
    """Profile plus memorial_count and photo_count"""
    profile = get_user(uid)
    if profile is None:
        raise NotFound('User not found')
    memorials = list(get_db().collection(MEMORIALS).where('creator_uid', '==', uid).stream())
    profile['memorial_count'] = len(memorials)
    profile['photo_count'] = sum((doc.to_dict() or {}).get('photo_count', 0) for doc in memorials)
    return profile


def update_profile(uid, data):
    updates = {}
    for field in PROFILE_FIELDS:
        if field in data:
            updates[field] = get_str(data, field)
    if not updates:
        raise ValidationError('Nothing to update')
    if 'display_name' in updates:
        if not updates['display_name']:
            raise ValidationError('Display name cannot be empty')
        update_auth_user(uid, display_name=updates['display_name'])
    updates['updated_at'] = now_iso()
    _users().document(uid).update(updates)
    return get_profile(uid)


def change_email(uid, new_email):
    email = normalize_email(new_email)
    if not is_valid_email(email):
        raise ValidationError('Invalid email address')
    existing = find_user_by_email(email)
    if existing and existing['id'] != uid:
        raise Conflict('An account with this email already exists')
    update_auth_user(uid, email=email, email_verified=False)
    _users().document(uid).update({'email': email, 'email_verified': False, 'updated_at': now_iso()})
    logger.info(f"✅ Email changed for {uid}")
    return email


def change_password(uid, new_password):
    validate_password(new_password)
    update_auth_user(uid, password=new_password)
    logger.info(f"✅ Password changed for {uid}")


def list_pending_funeral_directors():
    query = _users().where('role', '==', ROLE_FUNERAL_DIRECTOR).where('approved', '==', False)
    return [snapshot_to_dict(doc) for doc in query.stream()]


def approve_funeral_director(uid, approved_by):
    user = get_user(uid)
    if user is None:
        raise NotFound('User not found')
    if user.get('role') != ROLE_FUNERAL_DIRECTOR:
        raise ValidationError('User is not a funeral director')
    updates = {'approved': True, 'approved_at': now_iso(), 'approved_by': approved_by, 'updated_at': now_iso()}
    _users().document(uid).update(updates)
    logger.info(f"✅ Funeral director {uid} approved by {approved_by}")
    user.update(updates)
    return user
