# tributestream/photos.py
import io
import logging
import os
import time
from datetime import datetime, timedelta

from botocore.exceptions import ClientError
from firebase_admin import firestore
from PIL import Image, ImageOps

from tributestream.config import (
    ALLOWED_IMAGE_TYPES, ALLOWED_IMAGE_EXTENSIONS, MAX_PHOTO_SIZE, PHOTO_MAX_DIMENSIONS,
    PHOTO_JPEG_QUALITY, PHOTO_PAGE_SIZE, UPLOAD_SESSION_MINUTES
)
from tributestream.database import get_db, memorial_ref, snapshot_to_dict, PHOTOS, UPLOAD_SESSIONS
from tributestream.exceptions import ExternalServiceError, NotFound, PermissionDenied, ValidationError
from tributestream.memorials import get_memorial, get_viewable_memorial
from tributestream.permissions import can_manage_photos, can_upload_photos
from tributestream.storage import (
    upload_fileobj, delete_object, head_object, generate_presigned_url, generate_presigned_post,
    is_presigned_url_expired
)
from tributestream.utils import get_str, now_iso, utc_now, random_suffix

logger = logging.getLogger(__name__)

MAX_CAPTION_LENGTH = 500
SESSION_PENDING = 'pending'
SESSION_COMPLETED = 'completed'
SESSION_EXPIRED = 'expired'
EXTENSION_BY_TYPE = {'image/jpeg': '.jpg', 'image/png': '.png', 'image/gif': '.gif', 'image/webp': '.webp'}


def _photos(slug):
    return memorial_ref(slug).collection(PHOTOS)


def validate_photo(filename, mime_type, size):
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f'{filename}: only JPEG, PNG, GIF and WebP images are allowed')
    if size <= 0:
        raise ValidationError(f'{filename}: file is empty')
    if size > MAX_PHOTO_SIZE:
        raise ValidationError(f'{filename}: file exceeds {MAX_PHOTO_SIZE // (1024 * 1024)}MB limit')


def build_s3_key(slug, filename):
    """memorials/{slug}/{timestamp}_{random}{ext}"""
    ext = os.path.splitext(filename or '')[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        ext = '.jpg'
    return f'memorials/{slug}/{int(time.time() * 1000)}_{random_suffix()}{ext}'


def compress_image(data, mime_type):
    """Resize to fit 1920x1080 and re-encode as progressive JPEG.

    GIFs are left alone to keep animation. Returns (bytes, mime_type); the
    original bytes come back unchanged if Pillow cannot process them.
    """
    if mime_type == 'image/gif':
        return data, mime_type
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            img.thumbnail(PHOTO_MAX_DIMENSIONS, Image.LANCZOS)
            if img.mode in ('RGBA', 'LA', 'P'):
                rgba = img.convert('RGBA')
                background = Image.new('RGB', rgba.size, 'white')
                background.paste(rgba, mask=rgba.split()[-1])
                img = background
            elif img.mode != 'RGB':
                img = img.convert('RGB')
            out = io.BytesIO()
            img.save(out, format='JPEG', quality=PHOTO_JPEG_QUALITY, optimize=True, progressive=True)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning(f"Image compression failed, keeping original: {e}")
        return data, mime_type
    compressed = out.getvalue()
    logger.info(f"🗜️ Compressed image {len(data)} -> {len(compressed)} bytes")
    return compressed, 'image/jpeg'


def _require_photo_manager(memorial, user):
    if not can_manage_photos(memorial, user):
        raise PermissionDenied('You do not have permission to manage photos for this memorial')


def _require_uploader(memorial, user):
    if not can_upload_photos(memorial, user):
        raise PermissionDenied('You do not have permission to upload photos to this memorial')


def _next_order(slug):
    # read-then-write: uploads landing together can share an order value;
    # list_photos breaks those ties by created_at
    query = _photos(slug).order_by('order', direction=firestore.Query.DESCENDING).limit(1)
    for doc in query.stream():
        return (doc.to_dict() or {}).get('order', -1) + 1
    return 0


def _record_photo(slug, s3_key, original_name, size, mime_type, user, caption=''):
    """Photo document plus photo_count increment in one batch"""
    ref = _photos(slug).document()
    photo = {
        'file_name': s3_key.rsplit('/', 1)[-1],
        'original_name': original_name,
        's3_key': s3_key,
        'url': generate_presigned_url(s3_key),
        'order': _next_order(slug),
        'size': size,
        'mime_type': mime_type,
        'uploaded_by': user['uid'],
        'caption': (caption or '')[:MAX_CAPTION_LENGTH],
        'created_at': now_iso(),
    }
    batch = get_db().batch()
    batch.set(ref, photo)
    batch.update(memorial_ref(slug), {'photo_count': firestore.Increment(1), 'updated_at': now_iso()})
    batch.commit()
    photo['id'] = ref.id
    return photo


def upload_photos(slug, files, user, compress=True):
    """Upload werkzeug FileStorage objects through the API server"""
    memorial = get_memorial(slug)
    _require_uploader(memorial, user)
    if not files:
        raise ValidationError('No photos provided')

    payloads = []
    for storage_file in files:
        data = storage_file.read()
        mime_type = storage_file.mimetype or storage_file.content_type
        validate_photo(storage_file.filename, mime_type, len(data))
        payloads.append((storage_file.filename, data, mime_type))

    uploaded = []
    for filename, data, mime_type in payloads:
        if compress:
            data, mime_type = compress_image(data, mime_type)
        name = filename if mime_type != 'image/jpeg' else os.path.splitext(filename)[0] + '.jpg'
        s3_key = build_s3_key(slug, name)
        try:
            upload_fileobj(io.BytesIO(data), s3_key, mime_type)
        except ClientError as e:
            logger.error(f"❌ S3 upload failed for {filename}: {e}")
            raise ExternalServiceError(f'Failed to upload {filename}')
        uploaded.append(_record_photo(slug, s3_key, filename, len(data), mime_type, user))

    logger.info(f"✅ {len(uploaded)} photo(s) uploaded to {slug} by {user['uid']}")
    return uploaded


def create_upload_session(slug, data, user):
    """Presigned POST so the browser can upload straight to S3"""
    memorial = get_memorial(slug)
    _require_uploader(memorial, user)

    filename = get_str(data, 'filename')
    content_type = get_str(data, 'content_type')
    try:
        size = int(data.get('size') or 0)
    except (TypeError, ValueError):
        raise ValidationError('size must be a number')
    if not filename:
        raise ValidationError('filename is required')
    validate_photo(filename, content_type, size)

    ext = EXTENSION_BY_TYPE[content_type]
    s3_key = build_s3_key(slug, os.path.splitext(filename)[0] + ext)
    expires_at = utc_now() + timedelta(minutes=UPLOAD_SESSION_MINUTES)
    upload = generate_presigned_post(s3_key, content_type, expires_in=UPLOAD_SESSION_MINUTES * 60)

    ref = get_db().collection(UPLOAD_SESSIONS).document()
    ref.set({
        'memorial_id': slug,
        'user_id': user['uid'],
        's3_key': s3_key,
        'content_type': content_type,
        'original_name': filename,
        'caption': get_str(data, 'caption')[:MAX_CAPTION_LENGTH],
        'status': SESSION_PENDING,
        'created_at': now_iso(),
        'expires_at': expires_at.isoformat(),
    })
    logger.info(f"📝 Upload session {ref.id} created for {slug}")
    return {'session_id': ref.id, 's3_key': s3_key, 'upload': upload, 'expires_at': expires_at.isoformat()}


def confirm_upload(slug, session_id, user):
    """Record the photo once the browser finished uploading to S3"""
    if not session_id:
        raise ValidationError('session_id is required')
    ref = get_db().collection(UPLOAD_SESSIONS).document(session_id)
    session = snapshot_to_dict(ref.get())
    if session is None or session['memorial_id'] != slug or session['user_id'] != user['uid']:
        raise NotFound('Upload session not found')
    if session['status'] != SESSION_PENDING:
        raise ValidationError('Upload session already used')
    if datetime.fromisoformat(session['expires_at']) < utc_now():
        ref.update({'status': SESSION_EXPIRED})
        raise ValidationError('Upload session expired')

    memorial = get_memorial(slug)
    _require_uploader(memorial, user)

    head = head_object(session['s3_key'])
    if head is None:
        raise ValidationError('Uploaded file not found')
    size = head.get('ContentLength', 0)
    if size > MAX_PHOTO_SIZE:
        delete_object(session['s3_key'])
        ref.update({'status': SESSION_EXPIRED})
        raise ValidationError(f'File exceeds {MAX_PHOTO_SIZE // (1024 * 1024)}MB limit')

    photo = _record_photo(
        slug, session['s3_key'], session['original_name'], size, session['content_type'],
        user, session.get('caption', '')
    )
    ref.update({'status': SESSION_COMPLETED, 'photo_id': photo['id'], 'completed_at': now_iso()})
    return photo


def refresh_photo_url(photo_ref, photo):
    """Replace an expired presigned URL; returns the photo dict"""
    if photo.get('s3_key') and (not photo.get('url') or is_presigned_url_expired(photo['url'])):
        photo['url'] = generate_presigned_url(photo['s3_key'])
        photo_ref.update({'url': photo['url'], 'url_refreshed_at': now_iso()})
    return photo


def list_photos(slug, user, page=1, limit=PHOTO_PAGE_SIZE):
    get_viewable_memorial(slug, user)
    docs = list(_photos(slug).order_by('order').stream())
    docs.sort(key=lambda doc: (doc.to_dict()['order'], doc.to_dict().get('created_at') or ''))
    start = (page - 1) * limit
    photos = [refresh_photo_url(doc.reference, snapshot_to_dict(doc)) for doc in docs[start:start + limit]]
    return {
        'photos': photos,
        'page': page,
        'limit': limit,
        'total': len(docs),
        'has_more': start + limit < len(docs),
    }


def reorder_photos(slug, data, user):
    """Apply [{id, order}, ...] or an ordered list of photo ids"""
    memorial = get_memorial(slug)
    _require_photo_manager(memorial, user)

    if isinstance(data.get('photos'), list):
        try:
            orders = {item['id']: int(item['order']) for item in data['photos']}
        except (KeyError, TypeError, ValueError):
            raise ValidationError('photos must be a list of {id, order}')
    elif isinstance(data.get('photo_ids'), list):
        if not all(isinstance(photo_id, str) for photo_id in data['photo_ids']):
            raise ValidationError('photo_ids must be a list of strings')
        orders = {photo_id: index for index, photo_id in enumerate(data['photo_ids'])}
    else:
        raise ValidationError('photos or photo_ids is required')
    if not orders:
        raise ValidationError('No photos to reorder')

    existing = {doc.id for doc in _photos(slug).stream()}
    unknown = set(orders) - existing
    if unknown:
        raise NotFound(f"Photo not found: {', '.join(sorted(unknown))}")

    batch = get_db().batch()
    for photo_id, order in orders.items():
        batch.update(_photos(slug).document(photo_id), {'order': order})
    batch.commit()
    logger.info(f"🔄 Reordered {len(orders)} photo(s) in {slug}")
    return orders


def update_caption(slug, photo_id, caption, user):
    memorial = get_memorial(slug)
    _require_photo_manager(memorial, user)
    caption = (caption or '').strip()
    if len(caption) > MAX_CAPTION_LENGTH:
        raise ValidationError(f'Caption must be at most {MAX_CAPTION_LENGTH} characters')
    ref = _photos(slug).document(photo_id)
    photo = snapshot_to_dict(ref.get())
    if photo is None:
        raise NotFound('Photo not found')
    ref.update({'caption': caption})
    photo['caption'] = caption
    return photo


def delete_photo(slug, photo_id, user):
    memorial = get_memorial(slug)
    _require_photo_manager(memorial, user)
    ref = _photos(slug).document(photo_id)
    photo = snapshot_to_dict(ref.get())
    if photo is None:
        raise NotFound('Photo not found')

    try:
        delete_object(photo['s3_key'])
    except ClientError as e:
        logger.error(f"❌ S3 delete failed for {photo['s3_key']}: {e}")
        raise ExternalServiceError('Failed to delete photo')

    batch = get_db().batch()
    batch.delete(ref)
    batch.update(memorial_ref(slug), {'photo_count': firestore.Increment(-1), 'updated_at': now_iso()})
    batch.commit()
    logger.info(f"🗑️ Photo {photo_id} deleted from {slug} by {user['uid']}")
