# tributestream/account_routes.py
"""Registration, profile and admin endpoints."""
import logging
import threading

from flask import Blueprint, jsonify, g

from tributestream.auth import login_required, admin_required, create_jwt_for_admin, check_admin_credentials
from tributestream.scheduler import refresh_expiring_urls, scheduler
from tributestream.users import (
    register_user, get_profile, update_profile, change_email, change_password,
    list_pending_funeral_directors, approve_funeral_director
)
from tributestream.utils import get_json_body, get_str

logger = logging.getLogger(__name__)

account_bp = Blueprint('account', __name__)


@account_bp.route('/auth/register', methods=['POST'])
def api_register():
    profile = register_user(get_json_body())
    message = 'Registration successful'
    if not profile['approved']:
        message = 'Registration received. Your funeral director account is awaiting approval.'
    return jsonify({'message': message, 'user': profile}), 201


@account_bp.route('/profile', methods=['GET'])
@login_required
def api_get_profile():
    return jsonify({'user': get_profile(g.user['uid'])})


@account_bp.route('/profile', methods=['PUT', 'PATCH'])
@login_required
def api_update_profile():
    return jsonify({'user': update_profile(g.user['uid'], get_json_body())})


@account_bp.route('/profile/email', methods=['PUT'])
@login_required
def api_change_email():
    email = change_email(g.user['uid'], get_json_body().get('email'))
    return jsonify({'message': 'Email updated. Please verify your new address.', 'email': email})


@account_bp.route('/profile/password', methods=['PUT'])
@login_required
def api_change_password():
    change_password(g.user['uid'], get_json_body().get('password'))
    return jsonify({'message': 'Password updated'})


# Admin

@account_bp.route('/admin/login', methods=['POST'])
def api_admin_login():
    data = get_json_body()
    email = get_str(data, 'email')
    if check_admin_credentials(email, data.get('password', '')):
        return jsonify({'token': create_jwt_for_admin()}), 200
    logger.warning(f"Admin login failed for {email!r}")
    return jsonify({'error': 'Invalid admin credentials'}), 401


@account_bp.route('/admin/funeral-directors/pending', methods=['GET'])
@admin_required
def api_pending_funeral_directors():
    return jsonify({'funeral_directors': list_pending_funeral_directors()})


@account_bp.route('/admin/funeral-directors/<uid>/approve', methods=['POST'])
@admin_required
def api_approve_funeral_director(uid):
    return jsonify({'user': approve_funeral_director(uid, g.user['uid'])})


@account_bp.route('/admin/refresh-urls', methods=['POST'])
@admin_required
def api_manual_refresh_urls():
    """Run the photo URL refresh in the background"""
    thread = threading.Thread(target=refresh_expiring_urls, daemon=True)
    thread.start()
    return jsonify({'message': 'Photo URL refresh started', 'status': 'started'}), 202


@account_bp.route('/admin/scheduler-status', methods=['GET'])
@admin_required
def api_scheduler_status():
    jobs = [{
        'id': job.id,
        'name': job.name,
        'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
        'trigger': str(job.trigger)
    } for job in scheduler.get_jobs()]
    return jsonify({'running': scheduler.running, 'jobs': jobs})
