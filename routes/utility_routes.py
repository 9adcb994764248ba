from datetime import datetime, date
from decimal import Decimal
from flask import jsonify

from models import COURSE_STATUSES
from exceptions import InvalidConfigurationError


def json_ready(value):
    """Convert calculator output (Decimals, datetimes, nested dicts/lists) into JSON-safe values"""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: json_ready(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_ready(item) for item in value]
    return value


def not_found_response(result):
    return jsonify({'success': False, 'error': 'NotFound', 'message': result.message}), 404


def computed_response(result):
    return jsonify({'success': True, 'data': json_ready(result.value)})


def parse_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_course_statuses(value):
    """Comma separated course statuses from a query string; None when not given"""
    if not value:
        return None
    statuses = [item.strip().upper() for item in value.split(',') if item.strip()]
    invalid = [status for status in statuses if status not in COURSE_STATUSES]
    if invalid:
        raise InvalidConfigurationError(f"Unknown course status: {', '.join(invalid)}")
    return statuses


def parse_optional_int(value, field_name):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"{field_name} must be an integer")
