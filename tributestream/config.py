# tributestream/config.py

import os

# Admin JWT
ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', '')
ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', 'changeme')
JWT_SECRET = os.environ.get('JWT_SECRET_KEY', 'supersecretjwt')
JWT_ALGORITHM = 'HS256'
JWT_EXPIRES_HOURS = 24

SECRET_KEY = os.environ.get('FLASK_SECRET_KEY', 'supersecret')
APP_BASE_URL = os.environ.get('APP_BASE_URL', 'https://tributestream.com').rstrip('/')

# Firebase
FIREBASE_SERVICE_ACCOUNT = os.environ.get('FIREBASE_SERVICE_ACCOUNT', '')
FIREBASE_SERVICE_ACCOUNT_PATH = os.environ.get('FIREBASE_SERVICE_ACCOUNT_PATH', '')
FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID', '')
FIRESTORE_EMULATOR_HOST = os.environ.get('FIRESTORE_EMULATOR_HOST', '')


def get_firebase_creds():
    """Service account dict built from the individual key variables"""
    if not os.environ.get('private_key'):
        return None
    return {
        "type": os.environ.get("type", "service_account"),
        "project_id": os.environ.get("project_id", FIREBASE_PROJECT_ID),
        "private_key_id": os.environ.get("private_key_id", ""),
        "private_key": os.environ["private_key"].replace('\\n', '\n'),
        "client_email": os.environ.get("client_email", ""),
        "client_id": os.environ.get("client_id", ""),
        "auth_uri": os.environ.get("auth_uri", "https://accounts.google.com/o/oauth2/auth"),
        "token_uri": os.environ.get("token_uri", "https://oauth2.googleapis.com/token"),
        "auth_provider_x509_cert_url": os.environ.get("auth_provider_x509_cert_url", ""),
        "client_x509_cert_url": os.environ.get("client_x509_cert_url", "")
    }


# AWS S3
AWS_ACCESS_KEY = os.environ.get('AWS_ACCESS_KEY_ID', '')
AWS_SECRET_KEY = os.environ.get('AWS_SECRET_ACCESS_KEY', '')
REGION_NAME = os.environ.get('AWS_REGION', 'us-east-1')
BUCKET_NAME = os.environ.get('S3_BUCKET_NAME', 'tributestream-photos')
S3_ENDPOINT_URL = os.environ.get('S3_ENDPOINT_URL') or None
PRESIGNED_URL_EXPIRES = int(os.environ.get('PRESIGNED_URL_EXPIRES', 3600))
UPLOAD_SESSION_MINUTES = 30

# Stripe
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', '')
DEFAULT_CURRENCY = 'usd'

# SendGrid
SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
FROM_EMAIL = os.environ.get('FROM_EMAIL', 'noreply@tributestream.com')
FROM_NAME = os.environ.get('FROM_NAME', 'TributeStream')
CONTACT_EMAIL = os.environ.get('CONTACT_EMAIL', 'contact@tributestream.com')

# Cloudflare Stream
CLOUDFLARE_ACCOUNT_ID = os.environ.get('CLOUDFLARE_ACCOUNT_ID', '')
CLOUDFLARE_API_TOKEN = os.environ.get('CLOUDFLARE_API_TOKEN', '')
CLOUDFLARE_STREAM_CUSTOMER_CODE = os.environ.get('CLOUDFLARE_STREAM_CUSTOMER_CODE', '')
CLOUDFLARE_API_BASE = 'https://api.cloudflare.com/client/v4'
VENDOR_TIMEOUT_SECONDS = 10

# Memorials
MEMORIAL_DEFAULT_PUBLIC = os.environ.get('MEMORIAL_DEFAULT_PUBLIC', 'false').lower() == 'true'
SEARCH_RESULT_LIMIT = 20

# Photo upload
MAX_CONTENT_LENGTH = 100 * 1024 * 1024  # whole multipart request
MAX_PHOTO_SIZE = 10 * 1024 * 1024  # 10MB per photo
ALLOWED_IMAGE_TYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}
ALLOWED_IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp'}
PHOTO_MAX_DIMENSIONS = (1920, 1080)
PHOTO_JPEG_QUALITY = 85
PHOTO_PAGE_SIZE = 20
