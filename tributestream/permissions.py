# tributestream/permissions.py
"""Role constants and memorial access checks.

``user`` is a profile dict (``uid``, ``role``, ...) or None for anonymous
callers; ``memorial`` is a memorial document dict.
"""
from tributestream.database import memorial_ref, snapshot_to_dict, FAMILY

ROLE_VIEWER = 'Viewer'
ROLE_OWNER = 'Owner'
ROLE_ADMIN = 'Admin'
ROLE_FUNERAL_DIRECTOR = 'FuneralDirector'
ROLES = (ROLE_VIEWER, ROLE_OWNER, ROLE_ADMIN, ROLE_FUNERAL_DIRECTOR)
SELF_REGISTER_ROLES = (ROLE_VIEWER, ROLE_FUNERAL_DIRECTOR)

FAMILY_STATUS_ACTIVE = 'active'
FAMILY_STATUS_REMOVED = 'removed'

DEFAULT_FAMILY_PERMISSIONS = {
    'can_upload_photos': True,
    'can_edit_memorial': False,
    'can_invite_others': False,
    'can_moderate_comments': False,
}


def is_admin(user):
    return bool(user) and user.get('role') == ROLE_ADMIN


def is_approved_funeral_director(user):
    return bool(user) and user.get('role') == ROLE_FUNERAL_DIRECTOR and bool(user.get('approved'))


def is_creator(memorial, user):
    return bool(user) and memorial.get('creator_uid') == user.get('uid')


def is_assigned_funeral_director(memorial, user):
    return bool(user) and bool(memorial.get('funeral_director_id')) \
        and memorial.get('funeral_director_id') == user.get('uid')


def get_family_member(memorial, user):
    """Active family membership of the user, or None"""
    if not user or not user.get('uid'):
        return None
    doc = memorial_ref(memorial['id']).collection(FAMILY).document(user['uid']).get()
    member = snapshot_to_dict(doc)
    if member is None or member.get('status') != FAMILY_STATUS_ACTIVE:
        return None
    return member


def has_family_permission(memorial, user, permission):
    member = get_family_member(memorial, user)
    return bool(member) and bool(member.get('permissions', {}).get(permission))


def _is_manager(memorial, user):
    return is_admin(user) or is_creator(memorial, user) or is_assigned_funeral_director(memorial, user)


def can_view_memorial(memorial, user):
    if memorial.get('is_public'):
        return True
    return _is_manager(memorial, user) or get_family_member(memorial, user) is not None


def can_edit_memorial(memorial, user):
    return _is_manager(memorial, user) or has_family_permission(memorial, user, 'can_edit_memorial')


def can_delete_memorial(memorial, user):
    return is_admin(user) or is_creator(memorial, user)


def can_manage_photos(memorial, user):
    return _is_manager(memorial, user) or has_family_permission(memorial, user, 'can_upload_photos')


def can_manage_family(memorial, user):
    return is_admin(user) or is_creator(memorial, user) \
        or has_family_permission(memorial, user, 'can_invite_others')


def can_grant_family_permissions(memorial, user):
    """Only the creator and admins may change permissions from the defaults"""
    return is_admin(user) or is_creator(memorial, user)


def can_upload_photos(memorial, user):
    """With allow_photos off only the creator, funeral director and admins upload"""
    if not memorial.get('allow_photos', True):
        return _is_manager(memorial, user)
    return can_manage_photos(memorial, user)
