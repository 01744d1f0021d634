# tributestream/slugs.py
import logging
import re
import unicodedata

from google.api_core.exceptions import AlreadyExists

from tributestream.database import memorial_ref
from tributestream.exceptions import Conflict, ValidationError
from tributestream.utils import random_suffix

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 50
MIN_SLUG_LENGTH = 3
FUNERAL_DIRECTOR_PREFIX = 'celebration-of-life-for-'
NUMBERED_ATTEMPTS = 3
RANDOM_ATTEMPTS = 5
SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
# path segments already used by /api/memorials/<name>
RESERVED_SLUGS = {'check-url', 'search', 'recent', 'create-with-owner', 'funeral-director'}


def generate_memorial_slug(name, prefix=''):
    """URL slug from a person's name, e.g. 'Mary O'Neil' -> 'mary-o-neil'"""
    ascii_name = unicodedata.normalize('NFKD', name or '').encode('ascii', 'ignore').decode('ascii')
    slug = re.sub(r'[^a-z0-9]+', '-', ascii_name.lower()).strip('-')
    slug = slug[:MAX_SLUG_LENGTH].rstrip('-') or 'memorial'
    return f'{prefix}{slug}'


def candidate_slugs(base):
    """base, base-1 .. base-3, then base-<random>"""
    yield base
    for counter in range(1, NUMBERED_ATTEMPTS + 1):
        yield f'{base}-{counter}'
    for _ in range(RANDOM_ATTEMPTS):
        yield f'{base}-{random_suffix()}'


def validate_custom_slug(slug):
    slug = (slug or '').strip().lower()
    if not (MIN_SLUG_LENGTH <= len(slug) <= MAX_SLUG_LENGTH) or not SLUG_PATTERN.match(slug):
        raise ValidationError(
            'Memorial URL must be 3-50 characters of lowercase letters, numbers and single dashes'
        )
    if slug in RESERVED_SLUGS:
        raise ValidationError('This memorial URL is reserved')
    return slug


def is_slug_available(slug):
    return not memorial_ref(slug).get().exists


def create_memorial_document(slug, data):
    """Create memorials/{slug}; raises Conflict when it already exists"""
    try:
        memorial_ref(slug).create({**data, 'custom_url': slug})
    except AlreadyExists:
        raise Conflict('This memorial URL is already taken')
    return slug


def reserve_memorial(base, data):
    """Create the memorial under the first free candidate slug and return it"""
    for candidate in candidate_slugs(base):
        if candidate in RESERVED_SLUGS:
            continue
        try:
            memorial_ref(candidate).create({**data, 'custom_url': candidate})
        except AlreadyExists:
            logger.info(f"🔄 Memorial URL '{candidate}' taken, trying next")
            continue
        logger.info(f"✅ Memorial URL reserved: {candidate}")
        return candidate
    raise Conflict('Could not generate a unique memorial URL')
