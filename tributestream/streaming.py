# tributestream/streaming.py
"""Cloudflare Stream live inputs.

A live input gives the browser a WHIP endpoint to publish WebRTC to, an
RTMPS ingest for hardware encoders and an HLS playback manifest. When
Cloudflare is not configured (or rejects the call) demo credentials are
returned so the booking flow can still be exercised.
"""
import logging
import time

import requests

from tributestream.config import (
    CLOUDFLARE_ACCOUNT_ID, CLOUDFLARE_API_TOKEN, CLOUDFLARE_STREAM_CUSTOMER_CODE,
    CLOUDFLARE_API_BASE, VENDOR_TIMEOUT_SECONDS
)

logger = logging.getLogger(__name__)

DEMO_PREFIX = 'demo_'


def is_configured():
    return bool(CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN)


def _live_inputs_url(uid=None):
    url = f'{CLOUDFLARE_API_BASE}/accounts/{CLOUDFLARE_ACCOUNT_ID}/stream/live_inputs'
    return f'{url}/{uid}' if uid else url


def _headers():
    return {'Authorization': f'Bearer {CLOUDFLARE_API_TOKEN}', 'Content-Type': 'application/json'}


def playback_url(uid):
    return f'https://customer-{CLOUDFLARE_STREAM_CUSTOMER_CODE}.cloudflarestream.com/{uid}/manifest/video.m3u8'


def demo_live_input(memorial_url):
    stream_key = f'{DEMO_PREFIX}{memorial_url}_{int(time.time() * 1000)}'
    return {
        'whip_endpoint': f'https://demo.tributestream.com/whip/{stream_key}',
        'stream_key': stream_key,
        'playback_url': f'https://demo.tributestream.com/live/{stream_key}/manifest/video.m3u8',
        'rtmp_url': 'rtmps://demo.tributestream.com:443/live/',
        'is_demo': True,
    }


def create_live_input(memorial_url):
    """Create a live input for the memorial and return its endpoints"""
    if not is_configured():
        logger.warning("⚠️ Cloudflare Stream not configured, using demo stream")
        return demo_live_input(memorial_url)

    body = {
        'meta': {'name': f'TributeStream - {memorial_url}'},
        'recording': {'mode': 'automatic'},
    }
    try:
        response = requests.post(
            _live_inputs_url(), json=body, headers=_headers(), timeout=VENDOR_TIMEOUT_SECONDS
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"❌ Cloudflare live input creation failed for {memorial_url}: {e}")
        return demo_live_input(memorial_url)

    if not payload.get('success'):
        logger.error(f"❌ Cloudflare rejected live input for {memorial_url}: {payload.get('errors')}")
        return demo_live_input(memorial_url)

    result = payload['result']
    uid = result['uid']
    logger.info(f"✅ Live input {uid} created for {memorial_url}")
    return {
        'whip_endpoint': result.get('webRTC', {}).get('url'),
        'stream_key': uid,
        'playback_url': playback_url(uid),
        'rtmp_url': result.get('rtmps', {}).get('url'),
        'is_demo': False,
    }


def delete_live_input(stream_key):
    """Delete a live input; demo keys are ignored. Returns True on success."""
    if not stream_key or stream_key.startswith(DEMO_PREFIX) or not is_configured():
        return True
    try:
        response = requests.delete(
            _live_inputs_url(stream_key), headers=_headers(), timeout=VENDOR_TIMEOUT_SECONDS
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"❌ Cloudflare live input deletion failed for {stream_key}: {e}")
        return False
    logger.info(f"🗑️ Live input {stream_key} deleted")
    return True


def get_live_input_status(stream_key):
    """'demo', the Cloudflare connection state, or 'unknown'"""
    if not stream_key or stream_key.startswith(DEMO_PREFIX):
        return 'demo'
    if not is_configured():
        return 'unknown'
    try:
        response = requests.get(
            _live_inputs_url(stream_key), headers=_headers(), timeout=VENDOR_TIMEOUT_SECONDS
        )
        response.raise_for_status()
        result = response.json().get('result') or {}
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Live input status lookup failed for {stream_key}: {e}")
        return 'unknown'
    return (result.get('status') or {}).get('current', {}).get('state') or 'unknown'
