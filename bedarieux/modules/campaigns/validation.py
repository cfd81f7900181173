import re
from datetime import datetime, timezone

from ...core.errors import ValidationError
from .models import CAMPAIGN_TYPES, DRAFT, SCHEDULED

SUBJECT_REGEX = re.compile(r'^[^<>\r\n]*$')
MAX_TITLE_LENGTH = 200
MAX_SUBJECT_LENGTH = 255
MAX_CONTENT_LENGTH = 50000
MAX_CONTENT_ITEMS = 50
MAX_ATTACHMENTS = 10

# Request key -> (model attribute, label)
CONTENT_KEYS = {
    'includedEvents': ('included_events', 'events'),
    'includedPlaces': ('included_places', 'places'),
    'includedPosts': ('included_posts', 'posts'),
}


def parse_datetime(value):
    """ISO 8601 string to naive UTC datetime"""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _text(payload, key, max_length, errors, required, label, pattern=None):
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors[key] = f'{label} is required'
        return None
    if not isinstance(value, str):
        errors[key] = f'{label} must be a string'
        return None
    value = value.strip()
    if len(value) > max_length:
        errors[key] = f'{label} is too long'
    elif pattern is not None and not pattern.match(value):
        errors[key] = f'{label} contains forbidden characters'
    return value


def _id_list(payload, key, label, errors):
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        errors[key] = 'Must be a list of ids'
        return []
    if len(value) > MAX_CONTENT_ITEMS:
        errors[key] = f'Too many {label} selected'
        return []
    return list(dict.fromkeys(value))


def _attachments(payload, errors):
    value = payload.get('attachments')
    if value is None:
        return None
    if not isinstance(value, list):
        errors['attachments'] = 'Must be a list'
        return None
    if len(value) > MAX_ATTACHMENTS:
        errors['attachments'] = 'Too many attachments'
        return None

    attachments = []
    for index, item in enumerate(value):
        if not isinstance(item, dict) or not item.get('url') or not item.get('name'):
            errors[f'attachments.{index}'] = 'Attachment needs a name and a url'
            continue
        size = item.get('size') or 0
        attachments.append({
            'file_name': str(item.get('id') or item['name']),
            'original_name': str(item['name'])[:255],
            'file_type': item.get('type'),
            'file_size': size if isinstance(size, int) else 0,
            'file_path': str(item['url']),
        })
    return attachments


def validate_campaign(payload, partial=False):
    """Validate a create (or, with partial=True, update) body.

    Returns a dict of model attributes, plus 'attachments' when given.
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body')

    errors = {}
    data = {}

    for key, max_length, label, pattern in (
        ('title', MAX_TITLE_LENGTH, 'Title', None),
        ('subject', MAX_SUBJECT_LENGTH, 'Subject', SUBJECT_REGEX),
        ('content', MAX_CONTENT_LENGTH, 'Content', None),
    ):
        if partial and key not in payload:
            continue
        value = _text(payload, key, max_length, errors, key != 'content', label, pattern)
        data[key] = value if value is not None else ''

    if 'type' in payload or not partial:
        campaign_type = payload.get('type') or 'NEWSLETTER'
        if campaign_type not in CAMPAIGN_TYPES:
            errors['type'] = f"Must be one of {', '.join(CAMPAIGN_TYPES)}"
        data['type'] = campaign_type

    for key, (attribute, label) in CONTENT_KEYS.items():
        if partial and key not in payload:
            continue
        data[attribute] = _id_list(payload, key, label, errors)

    if 'scheduledAt' in payload:
        scheduled_at = payload.get('scheduledAt')
        if scheduled_at:
            try:
                data['scheduled_at'] = parse_datetime(str(scheduled_at))
            except ValueError:
                errors['scheduledAt'] = 'Invalid date/time'
        else:
            data['scheduled_at'] = None

    if 'status' in payload or not partial:
        status = payload.get('status') or (SCHEDULED if data.get('scheduled_at') else DRAFT)
        if status not in (DRAFT, SCHEDULED):
            errors['status'] = 'Status must be DRAFT or SCHEDULED'
        elif status == SCHEDULED and not data.get('scheduled_at') and not partial:
            errors['scheduledAt'] = 'A scheduled campaign needs a date'
        data['status'] = status

    attachments = _attachments(payload, errors)
    if attachments is not None:
        data['attachments'] = attachments

    if errors:
        raise ValidationError('Invalid campaign data', fields=errors)
    return data


MAX_BULK_DELETE = 100


def validate_bulk_delete(payload):
    """{campaignIds: [...], force?: bool}: returns (ids, force)"""
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body')

    errors = {}
    ids = payload.get('campaignIds')
    if not isinstance(ids, list) or not ids:
        errors['campaignIds'] = 'A non-empty list of campaign ids is required'
    elif not all(isinstance(item, str) and item for item in ids):
        errors['campaignIds'] = 'Must be a list of ids'
    elif len(ids) > MAX_BULK_DELETE:
        errors['campaignIds'] = f'At most {MAX_BULK_DELETE} campaigns per request'

    force = payload.get('force', False)
    if not isinstance(force, bool):
        errors['force'] = 'Must be true or false'

    if errors:
        raise ValidationError('Invalid bulk delete request', fields=errors)
    return list(dict.fromkeys(ids)), force
