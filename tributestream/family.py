# tributestream/family.py
"""Family members (per-memorial collaborators) and followers."""
import logging

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists, NotFound as DocumentMissing

from tributestream.database import get_db, memorial_ref, snapshot_to_dict, FAMILY, FOLLOWERS, MEMORIALS
from tributestream.exceptions import Conflict, NotFound, PermissionDenied, ValidationError
from tributestream.memorials import get_memorial, get_viewable_memorial
from tributestream.permissions import (
    can_manage_family, can_grant_family_permissions, can_view_memorial, is_creator,
    DEFAULT_FAMILY_PERMISSIONS, FAMILY_STATUS_ACTIVE, FAMILY_STATUS_REMOVED
)
from tributestream.users import find_user_by_email
from tributestream.utils import get_str, now_iso

logger = logging.getLogger(__name__)


def _family(slug):
    return memorial_ref(slug).collection(FAMILY)


def _clean_permissions(requested, base=None):
    permissions = dict(base or DEFAULT_FAMILY_PERMISSIONS)
    for key, value in (requested or {}).items():
        if key not in DEFAULT_FAMILY_PERMISSIONS:
            raise ValidationError(f'Unknown permission: {key}')
        if not isinstance(value, bool):
            raise ValidationError(f'{key} must be true or false')
        permissions[key] = value
    return permissions


def _require_manager(memorial, user):
    if not can_manage_family(memorial, user):
        raise PermissionDenied('You do not have permission to manage family members')


def list_family_members(slug, user):
    memorial = get_memorial(slug)
    if not can_view_memorial(memorial, user):
        raise NotFound('Memorial not found')
    query = _family(slug).where('status', '==', FAMILY_STATUS_ACTIVE)
    return [snapshot_to_dict(doc) for doc in query.stream()]


def add_family_member(slug, data, user):
    """Invite an existing account to the memorial by email"""
    memorial = get_memorial(slug)
    _require_manager(memorial, user)

    email = get_str(data, 'email')
    if not email:
        raise ValidationError('Email is required')
    member_user = find_user_by_email(email)
    if member_user is None:
        raise NotFound('No account exists with this email')
    uid = member_user['id']
    if uid == memorial.get('creator_uid'):
        raise ValidationError('The memorial owner is already a member')

    requested = data.get('permissions')
    if requested and not can_grant_family_permissions(memorial, user):
        raise PermissionDenied('Only the memorial owner can set family permissions')

    ref = _family(slug).document(uid)
    existing = snapshot_to_dict(ref.get())
    if existing and existing.get('status') == FAMILY_STATUS_ACTIVE:
        raise Conflict('This person is already a family member')

    member = {
        'user_id': uid,
        'email': member_user.get('email', email),
        'name': member_user.get('display_name', ''),
        'relationship': get_str(data, 'relationship'),
        'permissions': _clean_permissions(requested),
        'status': FAMILY_STATUS_ACTIVE,
        'invited_by': user['uid'],
        'created_at': now_iso(),
        'updated_at': now_iso(),
    }
    ref.set(member)
    logger.info(f"✅ {uid} added to family of {slug} by {user['uid']}")
    member['id'] = uid
    return member


def update_family_member(slug, member_uid, data, user):
    memorial = get_memorial(slug)
    if not can_grant_family_permissions(memorial, user):
        raise PermissionDenied('Only the memorial owner can change family permissions')
    ref = _family(slug).document(member_uid)
    member = snapshot_to_dict(ref.get())
    if member is None or member.get('status') != FAMILY_STATUS_ACTIVE:
        raise NotFound('Family member not found')

    updates = {'updated_at': now_iso()}
    if 'permissions' in data:
        updates['permissions'] = _clean_permissions(data['permissions'], member.get('permissions'))
    if 'relationship' in data:
        updates['relationship'] = get_str(data, 'relationship')
    ref.update(updates)
    member.update(updates)
    return member


def remove_family_member(slug, member_uid, user):
    """Owners/managers remove anyone; members may remove themselves"""
    memorial = get_memorial(slug)
    if user['uid'] != member_uid:
        _require_manager(memorial, user)
    ref = _family(slug).document(member_uid)
    member = snapshot_to_dict(ref.get())
    if member is None or member.get('status') != FAMILY_STATUS_ACTIVE:
        raise NotFound('Family member not found')
    ref.update({'status': FAMILY_STATUS_REMOVED, 'removed_by': user['uid'], 'updated_at': now_iso()})
    logger.info(f"🗑️ {member_uid} removed from family of {slug} by {user['uid']}")


# Followers

def follow_memorial(slug, user, email_notifications=True, push_notifications=False):
    """Follow a memorial; following again only updates notification settings"""
    memorial = get_viewable_memorial(slug, user)
    if is_creator(memorial, user):
        raise ValidationError('You cannot follow your own memorial')

    ref = memorial_ref(slug).collection(FOLLOWERS).document(user['uid'])
    settings = {'email_notifications': bool(email_notifications), 'push_notifications': bool(push_notifications)}
    batch = get_db().batch()
    batch.create(ref, {'memorial_id': slug, 'user_id': user['uid'], 'created_at': now_iso(), **settings})
    batch.update(memorial_ref(slug), {'follower_count': firestore.Increment(1)})
    try:
        batch.commit()
    except AlreadyExists:
        ref.update(settings)
        return False
    logger.info(f"✅ {user['uid']} now follows {slug}")
    return True


def unfollow_memorial(slug, user):
    get_memorial(slug)
    ref = memorial_ref(slug).collection(FOLLOWERS).document(user['uid'])
    batch = get_db().batch()
    # only decrement when this commit is the one removing the follower
    batch.delete(ref, option=get_db().write_option(exists=True))
    batch.update(memorial_ref(slug), {'follower_count': firestore.Increment(-1)})
    try:
        batch.commit()
    except DocumentMissing:
        return False
    logger.info(f"{user['uid']} unfollowed {slug}")
    return True


def is_following(slug, uid):
    return memorial_ref(slug).collection(FOLLOWERS).document(uid).get().exists


def list_followers(slug, user):
    get_viewable_memorial(slug, user)
    return [snapshot_to_dict(doc) for doc in memorial_ref(slug).collection(FOLLOWERS).stream()]


def list_followed_memorials(uid):
    """Memorials the user follows (collection group query over followers)"""
    memorials = []
    for doc in get_db().collection_group(FOLLOWERS).where('user_id', '==', uid).stream():
        memorial = snapshot_to_dict(get_db().collection(MEMORIALS).document(doc.to_dict()['memorial_id']).get())
        if memorial:
            memorials.append(memorial)
    return memorials
