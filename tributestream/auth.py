# tributestream/auth.py
import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from firebase_admin import auth as firebase_auth
from firebase_admin.exceptions import FirebaseError
from flask import request, jsonify, g

from tributestream.config import ADMIN_EMAIL, ADMIN_PASSWORD, JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRES_HOURS
from tributestream.database import get_firebase_app, get_document, USERS
from tributestream.exceptions import AuthenticationError, Conflict, ExternalServiceError, TributeStreamError
from tributestream.permissions import ROLE_ADMIN, ROLE_VIEWER

logger = logging.getLogger(__name__)

SERVICE_ADMIN_UID = 'service-admin'


def create_jwt_for_admin():
    """Admin JWT for the ADMIN_EMAIL account"""
    now = datetime.now(timezone.utc)
    payload = {
        'sub': ADMIN_EMAIL,
        'iat': now,
        'exp': now + timedelta(hours=JWT_EXPIRES_HOURS)
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_jwt_token(token):
    """True when the token is a valid, unexpired admin JWT"""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return False
    return bool(ADMIN_EMAIL) and payload.get('sub') == ADMIN_EMAIL


def check_admin_credentials(email, password):
    return bool(ADMIN_EMAIL) and email == ADMIN_EMAIL and password == ADMIN_PASSWORD


# Firebase Auth

def verify_firebase_token(token):
    """Decoded claims of a Firebase ID token"""
    app = get_firebase_app()
    try:
        return firebase_auth.verify_id_token(token, app=app)
    except (firebase_auth.ExpiredIdTokenError, firebase_auth.RevokedIdTokenError):
        raise AuthenticationError('Session expired, please sign in again')
    except (firebase_auth.InvalidIdTokenError, ValueError):
        raise AuthenticationError('Invalid authentication token')
    except FirebaseError as e:
        logger.error(f"❌ Token verification failed: {e}")
        raise ExternalServiceError('Authentication service unavailable', 503)


def create_auth_user(email, password, display_name=None):
    """Create a Firebase Auth account and return its uid"""
    app = get_firebase_app()
    try:
        record = firebase_auth.create_user(
            email=email, password=password, display_name=display_name, app=app
        )
    except firebase_auth.EmailAlreadyExistsError:
        raise Conflict('An account with this email already exists')
    except FirebaseError as e:
        logger.error(f"❌ Account creation failed for {email}: {e}")
        raise ExternalServiceError('Could not create account')
    logger.info(f"✅ Auth account created: {record.uid}")
    return record.uid


def update_auth_user(uid, **fields):
    app = get_firebase_app()
    try:
        firebase_auth.update_user(uid, app=app, **fields)
    except firebase_auth.EmailAlreadyExistsError:
        raise Conflict('An account with this email already exists')
    except ValueError as e:
        raise TributeStreamError(str(e), 400)
    except FirebaseError as e:
        logger.error(f"❌ Account update failed for {uid}: {e}")
        raise ExternalServiceError('Could not update account')


def delete_auth_user(uid):
    app = get_firebase_app()
    try:
        firebase_auth.delete_user(uid, app=app)
        logger.info(f"🗑️ Auth account deleted: {uid}")
    except FirebaseError as e:
        logger.error(f"❌ Account deletion failed for {uid}: {e}")


def load_user(claims):
    """Profile of the token's user; users without a profile are Viewers"""
    uid = claims['uid']
    profile = get_document(USERS, uid)
    if profile is None:
        profile = {'uid': uid, 'email': claims.get('email', ''), 'role': ROLE_VIEWER, 'approved': True}
    profile.setdefault('uid', uid)
    return profile


def _bearer_token():
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    return auth_header.split(' ', 1)[1].strip() or None


def _authenticate(token):
    if verify_jwt_token(token):
        return {'uid': SERVICE_ADMIN_UID, 'email': ADMIN_EMAIL, 'role': ROLE_ADMIN, 'approved': True}
    return load_user(verify_firebase_token(token))


def login_required(f):
    """Require a signed-in user; sets g.user"""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({'error': 'Authentication required'}), 401
        try:
            g.user = _authenticate(token)
        except TributeStreamError as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)
    return decorated


def optional_auth(f):
    """Set g.user when a token is sent, otherwise g.user is None"""
    @wraps(f)
    def decorated(*args, **kwargs):
        g.user = None
        token = _bearer_token()
        if token:
            try:
                g.user = _authenticate(token)
            except TributeStreamError as e:
                return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)
    return decorated


def roles_required(*roles):
    """Require a signed-in user holding one of the roles"""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated(*args, **kwargs):
            if g.user.get('role') not in roles:
                return jsonify({'error': 'Insufficient permissions'}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


admin_required = roles_required(ROLE_ADMIN)
