"""
Request validation for the public newsletter API.

Each validator returns a cleaned dict or raises ValidationError carrying a
field -> message mapping.
"""

import re

from ...core.errors import ValidationError
from .models import FREQUENCIES, DEFAULT_FREQUENCY, PREFERENCE_FLAGS, normalize_email

# Email validation regex, rejects consecutive dots, leading/trailing dots
EMAIL_REGEX = re.compile(r'^[a-zA-Z0-9_%+-]+(\.[a-zA-Z0-9_%+-]+)*@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}$')
NAME_REGEX = re.compile(r"^[a-zA-ZÀ-ÿ\s\-']*$")
TOKEN_REGEX = re.compile(r'^[a-zA-Z0-9]{1,255}$')

MAX_EMAIL_LENGTH = 254
MAX_NAME_LENGTH = 100
# Signup surfaces the public form may report. "admin" and "account" are set
# server-side only.
PUBLIC_SOURCES = ('website', 'footer', 'popup', 'newsletter-page')

GDPR_ACTIONS = ('export', 'delete', 'anonymize')


def validate_email(email):
    """Validate email format"""
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    return EMAIL_REGEX.match(email) is not None


def _clean_name(value, field, errors):
    if value is None:
        return None
    if not isinstance(value, str):
        errors[field] = 'Invalid value'
        return None
    value = value.strip()
    if len(value) > MAX_NAME_LENGTH:
        errors[field] = 'Name too long'
    elif not NAME_REGEX.match(value):
        errors[field] = 'Invalid characters in name'
    return value or None


def _clean_preferences(value, errors, partial=False):
    """Full preferences with defaults, or with partial=True only the keys given"""
    preferences = {}
    if not partial:
        preferences = {flag: True for flag in PREFERENCE_FLAGS}
        preferences['frequency'] = DEFAULT_FREQUENCY
    if value is None:
        return preferences
    if not isinstance(value, dict):
        errors['preferences'] = 'Preferences must be an object'
        return preferences

    for flag in PREFERENCE_FLAGS:
        if flag in value:
            if not isinstance(value[flag], bool):
                errors[f'preferences.{flag}'] = 'Must be true or false'
            else:
                preferences[flag] = value[flag]

    frequency = value.get('frequency')
    if frequency is not None:
        frequency = str(frequency).upper()
        if frequency not in FREQUENCIES:
            errors['preferences.frequency'] = f"Must be one of {', '.join(FREQUENCIES)}"
        else:
            preferences['frequency'] = frequency
    return preferences


def validate_subscribe(payload):
    """Validate a subscribe body: {email, firstName?, lastName?, preferences?, source?}"""
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body')

    errors = {}
    email = normalize_email(payload.get('email') if isinstance(payload.get('email'), str) else '')
    if not email:
        errors['email'] = 'Email is required'
    elif not validate_email(email):
        errors['email'] = 'Invalid email format'

    first_name = _clean_name(payload.get('firstName'), 'firstName', errors)
    last_name = _clean_name(payload.get('lastName'), 'lastName', errors)
    preferences = _clean_preferences(payload.get('preferences'), errors)

    source = payload.get('source')
    if source not in PUBLIC_SOURCES:
        source = 'website'

    if errors:
        raise ValidationError('Invalid data', fields=errors)

    return {
        'email': email,
        'first_name': first_name,
        'last_name': last_name,
        'preferences': preferences,
        'source': source,
    }


def validate_token(token, field='token'):
    if not token or not isinstance(token, str):
        raise ValidationError('Token required', fields={field: 'Token required'})
    if not TOKEN_REGEX.match(token):
        raise ValidationError('Invalid token format', fields={field: 'Invalid token format'})
    return token


def validate_lookup_email(email):
    """Email used to look a subscriber up (status, unsubscribe, GDPR)"""
    email = normalize_email(email if isinstance(email, str) else '')
    if not email:
        raise ValidationError('Email required', fields={'email': 'Email is required'})
    if not validate_email(email):
        raise ValidationError('Invalid email format', fields={'email': 'Invalid email format'})
    return email


def validate_gdpr(payload):
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body')
    action = payload.get('action')
    if not payload.get('email') or not action:
        raise ValidationError('Email and action required', fields={
            key: 'Required' for key in ('email', 'action') if not payload.get(key)
        })
    email = validate_lookup_email(payload.get('email'))
    if action not in GDPR_ACTIONS:
        raise ValidationError(
            f"Unsupported action. Available actions: {', '.join(GDPR_ACTIONS)}",
            fields={'action': f"Must be one of {', '.join(GDPR_ACTIONS)}"},
        )
    return email, action


def _require_preferences(payload, errors):
    value = payload.get('preferences')
    if value is None:
        errors['preferences'] = 'Preferences are required'
        return {}
    preferences = _clean_preferences(value, errors, partial=True)
    if not preferences and 'preferences' not in errors:
        errors['preferences'] = 'No preference to update'
    return preferences


def validate_preferences_update(payload):
    """{token or email, preferences}: returns (token, email, preferences)"""
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body')

    token = payload.get('token')
    email = None
    if token:
        token = validate_token(token)
    elif payload.get('email'):
        email = validate_lookup_email(payload.get('email'))
    else:
        raise ValidationError('Token or email required', fields={'token': 'Token or email required'})

    errors = {}
    preferences = _require_preferences(payload, errors)
    if errors:
        raise ValidationError('Invalid data', fields=errors)
    return token, email, preferences


def validate_subscriber_update(payload):
    """Admin partial update. Only the keys present in the body are returned."""
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body')

    errors = {}
    data = {}
    for key, field in (('firstName', 'first_name'), ('lastName', 'last_name')):
        if key in payload:
            data[field] = _clean_name(payload[key], key, errors)
    for key, field in (('isActive', 'is_active'), ('isVerified', 'is_verified')):
        if key in payload:
            if not isinstance(payload[key], bool):
                errors[key] = 'Must be true or false'
            else:
                data[field] = payload[key]
    if 'preferences' in payload:
        data['preferences'] = _require_preferences(payload, errors)

    if errors:
        raise ValidationError('Invalid data', fields=errors)
    if not data:
        raise ValidationError('No fields to update')
    return data


ACCOUNT_ACTIONS = ('subscribe', 'unsubscribe', 'updatePreferences')


def validate_account_action(payload):
    """{action, preferences?, firstName?, lastName?}: returns (action, data)"""
    if not isinstance(payload, dict):
        raise ValidationError('Invalid JSON body')
    action = payload.get('action')
    if action not in ACCOUNT_ACTIONS:
        raise ValidationError(
            f"Unsupported action. Available actions: {', '.join(ACCOUNT_ACTIONS)}",
            fields={'action': f"Must be one of {', '.join(ACCOUNT_ACTIONS)}"},
        )

    errors = {}
    data = {}
    if action == 'subscribe':
        data['first_name'] = _clean_name(payload.get('firstName'), 'firstName', errors)
        data['last_name'] = _clean_name(payload.get('lastName'), 'lastName', errors)
        data['preferences'] = _clean_preferences(payload.get('preferences'), errors)
    elif action == 'updatePreferences':
        data['preferences'] = _require_preferences(payload, errors)

    if errors:
        raise ValidationError('Invalid data', fields=errors)
    return action, data
