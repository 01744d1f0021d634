# tributestream/scheduler.py

import atexit
import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from botocore.exceptions import BotoCoreError, ClientError
from google.api_core.exceptions import GoogleAPIError

from tributestream.database import get_db, PHOTOS, UPLOAD_SESSIONS
from tributestream.storage import generate_presigned_url, is_presigned_url_expired, delete_object, head_object
from tributestream.utils import now_iso, utc_now

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(
    timezone='UTC',
    job_defaults={
        'coalesce': True,
        'max_instances': 1
    }
)


def refresh_expiring_urls():
    """Refresh photo URLs that expired or expire within the next hour"""
    logger.info("🔄 Photo URL refresh started...")
    updated_count = 0
    total_count = 0
    try:
        for doc in get_db().collection_group(PHOTOS).stream():
            total_count += 1
            data = doc.to_dict() or {}
            s3_key = data.get('s3_key')
            if not s3_key:
                continue
            current_url = data.get('url', '')
            if current_url and not is_presigned_url_expired(current_url, safety_margin_minutes=60):
                continue
            try:
                doc.reference.update({
                    'url': generate_presigned_url(s3_key),
                    'url_refreshed_at': now_iso()
                })
                updated_count += 1
            except (BotoCoreError, ClientError, GoogleAPIError) as e:
                logger.error(f"❌ URL refresh failed for photo {doc.id}: {e}")
    except GoogleAPIError as e:
        logger.error(f"❌ Photo URL refresh aborted: {e}")
    logger.info(f"🎉 Photo URL refresh done: {updated_count}/{total_count}")
    return updated_count


def expire_upload_sessions():
    """Mark stale pending upload sessions expired and remove their orphaned objects"""
    expired_count = 0
    now = utc_now()
    try:
        query = get_db().collection(UPLOAD_SESSIONS).where('status', '==', 'pending')
        for doc in query.stream():
            data = doc.to_dict() or {}
            if datetime.fromisoformat(data['expires_at']) >= now:
                continue
            try:
                if head_object(data['s3_key']) is not None:
                    delete_object(data['s3_key'])
            except (BotoCoreError, ClientError) as e:
                logger.warning(f"Orphan cleanup failed for {data['s3_key']}: {e}")
            doc.reference.update({'status': 'expired'})
            expired_count += 1
    except GoogleAPIError as e:
        logger.error(f"❌ Upload session cleanup aborted: {e}")
    if expired_count:
        logger.info(f"🧹 Expired {expired_count} upload session(s)")
    return expired_count


def start_scheduler():
    """Start background jobs"""
    if scheduler.running:
        return
    scheduler.add_job(
        func=refresh_expiring_urls,
        trigger=IntervalTrigger(hours=3),
        id='refresh_urls',
        name='Photo URL refresh',
        replace_existing=True
    )
    scheduler.add_job(
        func=expire_upload_sessions,
        trigger=IntervalTrigger(hours=24),
        id='expire_upload_sessions',
        name='Upload session cleanup',
        replace_existing=True
    )
    scheduler.start()
    logger.info("🚀 Background scheduler started")
    atexit.register(lambda: scheduler.shutdown(wait=False))
