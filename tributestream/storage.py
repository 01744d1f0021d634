# tributestream/storage.py
import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse, parse_qs

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError

from tributestream.config import (
    AWS_ACCESS_KEY, AWS_SECRET_KEY, REGION_NAME, BUCKET_NAME, S3_ENDPOINT_URL,
    PRESIGNED_URL_EXPIRES, MAX_PHOTO_SIZE
)

logger = logging.getLogger(__name__)

_s3_client = None

s3_config = TransferConfig(
    multipart_threshold=1024 * 1024 * 25,
    multipart_chunksize=1024 * 1024 * 50,
    max_concurrency=5,
    use_threads=True
)


def get_s3_client():
    """S3 client, created on first use"""
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client(
            's3',
            aws_access_key_id=AWS_ACCESS_KEY or None,
            aws_secret_access_key=AWS_SECRET_KEY or None,
            region_name=REGION_NAME,
            endpoint_url=S3_ENDPOINT_URL
        )
    return _s3_client


def generate_presigned_url(key, expires_in=PRESIGNED_URL_EXPIRES):
    """Presigned GET URL for an S3 object"""
    return get_s3_client().generate_presigned_url(
        ClientMethod='get_object',
        Params={'Bucket': BUCKET_NAME, 'Key': key},
        ExpiresIn=expires_in
    )


def generate_presigned_post(key, content_type, expires_in=PRESIGNED_URL_EXPIRES, max_size=MAX_PHOTO_SIZE):
    """Presigned POST form for a direct browser upload"""
    return get_s3_client().generate_presigned_post(
        Bucket=BUCKET_NAME,
        Key=key,
        Fields={'Content-Type': content_type},
        Conditions=[
            {'Content-Type': content_type},
            ['content-length-range', 1, max_size]
        ],
        ExpiresIn=expires_in
    )


def upload_fileobj(fileobj, key, content_type):
    """Upload a file-like object to S3"""
    get_s3_client().upload_fileobj(
        fileobj, BUCKET_NAME, key,
        ExtraArgs={'ContentType': content_type},
        Config=s3_config
    )
    logger.info(f"✅ Uploaded s3://{BUCKET_NAME}/{key}")


def head_object(key):
    """Object metadata, or None when the key does not exist"""
    try:
        return get_s3_client().head_object(Bucket=BUCKET_NAME, Key=key)
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey', 'NotFound'):
            return None
        raise


def delete_object(key):
    get_s3_client().delete_object(Bucket=BUCKET_NAME, Key=key)
    logger.info(f"🗑️ Deleted s3://{BUCKET_NAME}/{key}")


def check_bucket():
    get_s3_client().head_bucket(Bucket=BUCKET_NAME)


def is_presigned_url_expired(url, safety_margin_minutes=60):
    """True when the URL has expired or will within the safety margin"""
    try:
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        if 'X-Amz-Date' not in query or 'X-Amz-Expires' not in query:
            return True
        issued_str = query['X-Amz-Date'][0]
        expires_in = int(query['X-Amz-Expires'][0])
        issued_time = datetime.strptime(issued_str, '%Y%m%dT%H%M%SZ').replace(tzinfo=timezone.utc)
        expiry_time = issued_time + timedelta(seconds=expires_in)
        margin_time = datetime.now(timezone.utc) + timedelta(minutes=safety_margin_minutes)
        return margin_time >= expiry_time
    except (ValueError, TypeError) as e:
        logger.warning(f"Could not parse presigned URL: {e}")
        return True
