# tributestream/api_routes.py
"""Memorial, photo, family and follower endpoints."""
import logging

from flask import Blueprint, request, jsonify, g, Response

from tributestream.auth import login_required, optional_auth, roles_required
from tributestream.config import PHOTO_PAGE_SIZE
from tributestream.exceptions import ValidationError
from tributestream.family import (
    list_family_members, add_family_member, update_family_member, remove_family_member,
    follow_memorial, unfollow_memorial, is_following, list_followers, list_followed_memorials
)
from tributestream.livestream import public_stream_info
from tributestream.memorials import (
    view_memorial, get_viewable_memorial, check_url_available, create_memorial,
    create_memorial_with_owner, create_funeral_director_memorial, update_memorial, delete_memorial,
    list_user_memorials, search_memorials, recent_memorials, share_links
)
from tributestream.permissions import ROLE_FUNERAL_DIRECTOR, can_edit_memorial, can_upload_photos
from tributestream.photos import (
    upload_photos, create_upload_session, confirm_upload, list_photos, reorder_photos,
    update_caption, delete_photo
)
from tributestream.qr_generator import create_memorial_qr
from tributestream.utils import get_json_body, get_int_arg, get_str, memorial_url

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)


# Memorials

@api_bp.route('/memorials', methods=['POST'])
@login_required
def api_create_memorial():
    memorial = create_memorial(get_json_body(), g.user)
    return jsonify({'memorial': memorial, 'memorial_url': memorial_url(memorial['id'])}), 201


@api_bp.route('/memorials/create-with-owner', methods=['POST'])
def api_create_memorial_with_owner():
    """Public tribute form"""
    return jsonify(create_memorial_with_owner(get_json_body())), 201


@api_bp.route('/memorials/funeral-director', methods=['POST'])
@roles_required(ROLE_FUNERAL_DIRECTOR)
def api_create_funeral_director_memorial():
    return jsonify(create_funeral_director_memorial(get_json_body(), g.user)), 201


@api_bp.route('/memorials/check-url', methods=['GET'])
def api_check_url():
    return jsonify({'available': check_url_available(request.args.get('url'))})


@api_bp.route('/memorials/search', methods=['GET'])
def api_search_memorials():
    results = search_memorials(request.args.get('q'))
    return jsonify({'memorials': results, 'count': len(results)})


@api_bp.route('/memorials/recent', methods=['GET'])
def api_recent_memorials():
    limit = get_int_arg('limit', 10, maximum=50)
    return jsonify({'memorials': recent_memorials(limit)})


@api_bp.route('/memorials/<slug>', methods=['GET'])
@optional_auth
def api_get_memorial(slug):
    memorial = view_memorial(slug, g.user)
    return jsonify({
        'memorial': memorial,
        'can_edit': can_edit_memorial(memorial, g.user),
        'can_upload_photos': can_upload_photos(memorial, g.user),
        'is_following': bool(g.user) and is_following(slug, g.user['uid']),
        'livestream': public_stream_info(slug),
    })


@api_bp.route('/memorials/<slug>', methods=['PUT', 'PATCH'])
@login_required
def api_update_memorial(slug):
    return jsonify({'memorial': update_memorial(slug, get_json_body(), g.user)})


@api_bp.route('/memorials/<slug>', methods=['DELETE'])
@login_required
def api_delete_memorial(slug):
    summary = delete_memorial(slug, g.user)
    return jsonify({'message': 'Memorial deleted', 'deleted': summary})


@api_bp.route('/memorials/<slug>/share', methods=['GET'])
@optional_auth
def api_share_memorial(slug):
    return jsonify(share_links(get_viewable_memorial(slug, g.user)))


@api_bp.route('/memorials/<slug>/qr', methods=['GET'])
@optional_auth
def api_memorial_qr(slug):
    memorial = get_viewable_memorial(slug, g.user)
    png = create_memorial_qr(memorial_url(slug), memorial.get('loved_one_name', ''))
    return Response(
        png,
        mimetype='image/png',
        headers={'Content-Disposition': f'inline; filename="{slug}-qr.png"'}
    )


@api_bp.route('/user/memorials', methods=['GET'])
@login_required
def api_user_memorials():
    return jsonify({'memorials': list_user_memorials(g.user['uid'])})


# Photos

@api_bp.route('/memorials/<slug>/photos', methods=['GET'])
@optional_auth
def api_list_photos(slug):
    page = get_int_arg('page', 1)
    limit = get_int_arg('limit', PHOTO_PAGE_SIZE, maximum=100)
    return jsonify(list_photos(slug, g.user, page, limit))


@api_bp.route('/memorials/<slug>/photos', methods=['POST'])
@login_required
def api_upload_photos(slug):
    files = request.files.getlist('photos') or request.files.getlist('photo')
    compress = request.form.get('compress', 'true').lower() != 'false'
    photos = upload_photos(slug, files, g.user, compress=compress)
    return jsonify({'photos': photos, 'count': len(photos)}), 201


@api_bp.route('/memorials/<slug>/photos/upload-url', methods=['POST'])
@login_required
def api_request_upload_url(slug):
    return jsonify(create_upload_session(slug, get_json_body(), g.user)), 201


@api_bp.route('/memorials/<slug>/photos/confirm', methods=['POST'])
@login_required
def api_confirm_upload(slug):
    photo = confirm_upload(slug, get_json_body().get('session_id'), g.user)
    return jsonify({'photo': photo}), 201


@api_bp.route('/memorials/<slug>/photos/order', methods=['PUT'])
@login_required
def api_reorder_photos(slug):
    orders = reorder_photos(slug, get_json_body(), g.user)
    return jsonify({'message': 'Photos reordered', 'order': orders})


@api_bp.route('/memorials/<slug>/photos/<photo_id>', methods=['PUT', 'PATCH'])
@login_required
def api_update_photo(slug, photo_id):
    data = get_json_body()
    if 'caption' not in data:
        raise ValidationError('caption is required')
    return jsonify({'photo': update_caption(slug, photo_id, get_str(data, 'caption'), g.user)})


@api_bp.route('/memorials/<slug>/photos/<photo_id>', methods=['DELETE'])
@login_required
def api_delete_photo(slug, photo_id):
    delete_photo(slug, photo_id, g.user)
    return jsonify({'message': 'Photo deleted'})


# Family members

@api_bp.route('/memorials/<slug>/family', methods=['GET'])
@login_required
def api_list_family(slug):
    return jsonify({'family_members': list_family_members(slug, g.user)})


@api_bp.route('/memorials/<slug>/family', methods=['POST'])
@login_required
def api_add_family_member(slug):
    return jsonify({'family_member': add_family_member(slug, get_json_body(), g.user)}), 201


@api_bp.route('/memorials/<slug>/family/<member_uid>', methods=['PUT', 'PATCH'])
@login_required
def api_update_family_member(slug, member_uid):
    return jsonify({'family_member': update_family_member(slug, member_uid, get_json_body(), g.user)})


@api_bp.route('/memorials/<slug>/family/<member_uid>', methods=['DELETE'])
@login_required
def api_remove_family_member(slug, member_uid):
    remove_family_member(slug, member_uid, g.user)
    return jsonify({'message': 'Family member removed'})


# Followers

@api_bp.route('/memorials/<slug>/follow', methods=['POST'])
@login_required
def api_follow(slug):
    data = get_json_body()
    created = follow_memorial(
        slug, g.user,
        email_notifications=data.get('email_notifications', True),
        push_notifications=data.get('push_notifications', False)
    )
    return jsonify({'following': True}), 201 if created else 200


@api_bp.route('/memorials/<slug>/follow', methods=['DELETE'])
@login_required
def api_unfollow(slug):
    unfollow_memorial(slug, g.user)
    return jsonify({'following': False})


@api_bp.route('/memorials/<slug>/followers', methods=['GET'])
@login_required
def api_list_followers(slug):
    followers = list_followers(slug, g.user)
    return jsonify({'followers': followers, 'count': len(followers)})


@api_bp.route('/user/following', methods=['GET'])
@login_required
def api_user_following():
    return jsonify({'memorials': list_followed_memorials(g.user['uid'])})
