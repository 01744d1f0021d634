# tributestream/app.py (main application)
import logging
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from tributestream import __version__
from tributestream.account_routes import account_bp
from tributestream.api_routes import api_bp
from tributestream.booking_routes import booking_bp
from tributestream.config import SECRET_KEY, MAX_CONTENT_LENGTH, MAX_PHOTO_SIZE
from tributestream.database import get_db, MEMORIALS
from tributestream.exceptions import TributeStreamError
from tributestream.scheduler import scheduler, start_scheduler
from tributestream.storage import check_bucket
from tributestream.utils import now_iso

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    @app.errorhandler(TributeStreamError)
    def handle_tributestream_error(error):
        if error.status_code >= 500:
            logger.error(f"❌ {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        return jsonify({'error': f'Upload too large. Photos may be at most {MAX_PHOTO_SIZE // (1024 * 1024)}MB each.'}), 413

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"❌ Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({'error': 'Internal server error'}), 500


def add_security_headers(response):
    """Security and CORS headers"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    response.headers['Access-Control-Allow-Origin'] = os.environ.get('CORS_ORIGIN', '*')
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, PATCH, DELETE, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization'
    return response


def health_check():
    """Service health"""
    try:
        get_db().collection(MEMORIALS).limit(1).get()
        firestore_status = 'healthy'
    except Exception as e:
        logger.warning(f"Firestore health check failed: {e}")
        firestore_status = 'unhealthy'

    try:
        check_bucket()
        s3_status = 'healthy'
    except Exception as e:
        logger.warning(f"S3 health check failed: {e}")
        s3_status = 'unhealthy'

    overall_status = 'healthy' if firestore_status == s3_status == 'healthy' else 'unhealthy'
    return jsonify({
        'status': overall_status,
        'timestamp': now_iso(),
        'services': {
            'firestore': firestore_status,
            's3': s3_status,
            'scheduler': scheduler.running
        },
        'version': __version__
    }), 200 if overall_status == 'healthy' else 503


def create_app():
    app = Flask(__name__)
    app.secret_key = SECRET_KEY
    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH
    app.json.sort_keys = False

    app.register_blueprint(api_bp, url_prefix='/api')
    app.register_blueprint(account_bp, url_prefix='/api')
    app.register_blueprint(booking_bp, url_prefix='/api')

    app.add_url_rule('/health', 'health_check', health_check, methods=['GET'])
    app.add_url_rule('/', 'index', lambda: jsonify({'service': 'TributeStream API', 'version': __version__}))
    app.after_request(add_security_headers)
    register_error_handlers(app)
    return app


if __name__ == "__main__":
    app = create_app()
    start_scheduler()

    port = int(os.environ.get("PORT", 8080))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    logger.info(f"🚀 TributeStream API starting on port {port}")
    app.run(host="0.0.0.0", port=port, debug=debug)
