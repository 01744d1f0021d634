# tributestream/database.py

import json
import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore

from tributestream.config import (
    FIREBASE_SERVICE_ACCOUNT, FIREBASE_SERVICE_ACCOUNT_PATH, FIREBASE_PROJECT_ID,
    FIRESTORE_EMULATOR_HOST, BUCKET_NAME, get_firebase_creds
)
from tributestream.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

# Collections
USERS = 'users'
MEMORIALS = 'memorials'
PHOTOS = 'photos'
FAMILY = 'family'
FOLLOWERS = 'followers'
LIVESTREAM_CONFIGS = 'livestream_configs'
UPLOAD_SESSIONS = 'upload_sessions'

BATCH_SIZE = 400

_firebase_app = None
_firestore_client = None


def _load_credentials():
    if FIREBASE_SERVICE_ACCOUNT:
        return credentials.Certificate(json.loads(FIREBASE_SERVICE_ACCOUNT))
    if FIREBASE_SERVICE_ACCOUNT_PATH and os.path.exists(FIREBASE_SERVICE_ACCOUNT_PATH):
        return credentials.Certificate(FIREBASE_SERVICE_ACCOUNT_PATH)
    creds = get_firebase_creds()
    if creds:
        return credentials.Certificate(creds)
    return None


def get_firebase_app():
    """Firebase Admin app, initialized on first use"""
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    if firebase_admin._apps:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app

    options = {'storageBucket': BUCKET_NAME}
    if FIREBASE_PROJECT_ID:
        options['projectId'] = FIREBASE_PROJECT_ID

    try:
        if FIRESTORE_EMULATOR_HOST:
            options.setdefault('projectId', 'demo-tributestream')
            _firebase_app = firebase_admin.initialize_app(options=options)
            logger.info(f"✅ Firebase initialized against emulator {FIRESTORE_EMULATOR_HOST}")
        else:
            cred = _load_credentials()
            _firebase_app = firebase_admin.initialize_app(cred, options)
            logger.info("✅ Firebase Admin initialized")
    except (ValueError, json.JSONDecodeError) as e:
        logger.error(f"❌ Firebase init failed: {e}")
        raise ExternalServiceError('Database is not configured', 503)

    return _firebase_app


def get_db():
    """Firestore client"""
    global _firestore_client

    if _firestore_client is None:
        _firestore_client = firestore.client(get_firebase_app())
    return _firestore_client


def memorial_ref(slug):
    return get_db().collection(MEMORIALS).document(slug)


def snapshot_to_dict(doc):
    """Snapshot as a dict with its document id"""
    if doc is None or not doc.exists:
        return None
    data = doc.to_dict() or {}
    data['id'] = doc.id
    return data


def get_document(collection, doc_id):
    return snapshot_to_dict(get_db().collection(collection).document(doc_id).get())


def delete_collection(collection_ref, batch_size=BATCH_SIZE):
    """Delete every document of a (sub)collection in batches; returns the count."""
    deleted = 0
    while True:
        docs = list(collection_ref.limit(batch_size).stream())
        if not docs:
            return deleted
        batch = get_db().batch()
        for doc in docs:
            batch.delete(doc.reference)
        batch.commit()
        deleted += len(docs)
