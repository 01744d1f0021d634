# tributestream/__init__.py
"""
TributeStream backend package

Memorial pages, photo galleries, livestream booking/payment and
transactional email served as a Flask JSON API.

Modules:
- app: Flask application factory and health check
- config: environment settings
- exceptions: API error types
- database: Firebase Admin / Firestore access
- storage: S3 photo storage
- auth: Firebase token and admin JWT authentication
- permissions: role based memorial access checks
- slugs: memorial URL generation and reservation
- users: registration and profiles
- memorials: memorial CRUD, search and sharing
- family: family members and followers
- photos: photo gallery
- livestream: livestream booking configuration
- payments: Stripe payment intents
- email_service: SendGrid transactional email
- streaming: Cloudflare Stream live inputs
- qr_generator: memorial QR codes
- scheduler: background jobs
- utils: shared helpers
- api_routes / account_routes / booking_routes: REST endpoints
"""

__version__ = "1.0.0"
__description__ = "TributeStream memorial service backend"
