"""
Input Validation & Sanitization Utilities
Validates field-visit API requests: station placement, drag updates and
station inspection forms (bait, capture and light trap)
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from services.visit_models import CAPTURE_STATION_TYPES, DEFAULT_STATION_TYPE, STATION_TYPES

logger = logging.getLogger(__name__)

# Inspection form options
CONSUMPTION_OPTIONS = ['0%', '25%', '50%', '75%', '100%']
CONDITION_OPTIONS = ['Functional', 'Damaged']
ACCESS_OPTIONS = ['Yes', 'No']
YES_NO_OPTIONS = ['Yes', 'No']
DOSAGE_OPTIONS = [10, 20, 30, 40, 50, 60]
INSECT_COUNT_FIELDS = ['mosquitoes', 'lepidoptera', 'drosophila', 'flies']

MAX_PIXEL_VALUE = 100000
MAX_NOTES_LENGTH = 2000


class ValidationError(Exception):
    """Custom exception for validation errors"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate that all required fields are present in the data

    Args:
        data: Dictionary of input data
        required_fields: List of required field names

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None or data[field] == '']

    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None


def validate_number_range(value: float, min_value: Optional[float] = None, max_value: Optional[float] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate number is within acceptable range

    Args:
        value: Number to validate
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, "Value must be a number"

    if min_value is not None and value < min_value:
        return False, f"Value too small (minimum {min_value})"

    if max_value is not None and value > max_value:
        return False, f"Value too large (maximum {max_value})"

    return True, None


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """
    Sanitize string input by removing null bytes and surrounding whitespace

    Args:
        value: String to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return str(value)

    sanitized = value.replace('\x00', '').strip()

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def _validate_numbers(data: Dict[str, Any], fields: List[str], positive: List[str] = None) -> Tuple[bool, Optional[str]]:
    positive = positive or []
    for field in fields:
        if field not in data or data[field] is None:
            continue
        min_value = 0 if field in positive else -MAX_PIXEL_VALUE
        is_valid, error = validate_number_range(data[field], min_value, MAX_PIXEL_VALUE)
        if not is_valid:
            return False, f"{field}: {error}"
        if field in positive and data[field] == 0:
            return False, f"{field}: must be greater than zero"
    return True, None


def validate_add_station_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate a tap-to-add station request

    Expected: tapX, tapY, referenceDimension, optional referenceHeight, scale, type
    """
    is_valid, error = validate_required_fields(data, ['tapX', 'tapY', 'referenceDimension'])
    if not is_valid:
        return False, error

    is_valid, error = _validate_numbers(
        data,
        ['tapX', 'tapY', 'referenceDimension', 'referenceHeight', 'scale'],
        positive=['referenceDimension', 'referenceHeight', 'scale'],
    )
    if not is_valid:
        return False, error

    station_type = data.get('type')
    if station_type is not None and station_type not in STATION_TYPES:
        return False, f"Invalid station type. Allowed: {', '.join(STATION_TYPES)}"

    return True, None


def validate_reposition_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate a drag update. Out-of-image positions are accepted; they are
    clamped onto the map edge, not rejected.
    """
    is_valid, error = validate_required_fields(data, ['rawX', 'rawY', 'referenceDimension'])
    if not is_valid:
        return False, error

    return _validate_numbers(
        data,
        ['rawX', 'rawY', 'referenceDimension', 'offsetX', 'offsetY', 'referenceHeight', 'scale'],
        positive=['referenceDimension', 'referenceHeight', 'scale'],
    )


def _resolve_type(data: Dict[str, Any], station_type: Optional[str]) -> str:
    return station_type or data.get('stationType') or DEFAULT_STATION_TYPE


def _count_value(value: Any) -> Optional[int]:
    """Non-negative whole number from an int or digit string, else None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _validate_bait_form(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    if not data.get('consumption'):
        return False, "You need to log Bait Consumption % before saving"
    if data['consumption'] not in CONSUMPTION_OPTIONS:
        return False, f"Invalid consumption. Allowed: {', '.join(CONSUMPTION_OPTIONS)}"

    bait_type = data.get('baitType')
    if not bait_type or not isinstance(bait_type, str) or not bait_type.strip():
        return False, "You need to log Bait Type before saving"

    is_valid, error = _validate_condition(data)
    if not is_valid:
        return False, error

    dosage = data.get('dosageG')
    if dosage is not None and dosage not in DOSAGE_OPTIONS:
        return False, f"Invalid dosage. Allowed: {', '.join(str(d) for d in DOSAGE_OPTIONS)}"

    return True, None


def _validate_capture_form(data: Dict[str, Any], station_type: str) -> Tuple[bool, Optional[str]]:
    """Multicatch (RM) and Snap Trap (ST) share capture and condition"""
    if data.get('capture') not in YES_NO_OPTIONS:
        return False, "You need to log Capture before saving"

    if data['capture'] == 'Yes':
        rodents = data.get('rodentsCaptured')
        if rodents is None or rodents == '':
            return False, "You need to log Rodents Captured before saving"
        if _count_value(rodents) is None:
            return False, "rodentsCaptured must be a whole number"

    if station_type == 'RM' and data.get('replacedSurface') not in YES_NO_OPTIONS:
        return False, "You need to log Replaced Surface before saving"
    if station_type == 'ST' and data.get('triggered') not in YES_NO_OPTIONS:
        return False, "You need to log Triggered before saving"

    return _validate_condition(data)


def _validate_light_trap_form(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    for key in INSECT_COUNT_FIELDS:
        value = data.get(key)
        if value is not None and value != '' and _count_value(value) is None:
            return False, f"{key} must be a whole number"

    others = data.get('others')
    if others is not None:
        if not isinstance(others, list) or not all(isinstance(o, str) for o in others):
            return False, "others must be a list of strings"

    if data.get('replaceBulb') not in YES_NO_OPTIONS:
        return False, "You need to log Replace Bulb before saving"

    return _validate_condition(data)


def _validate_condition(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    if not data.get('condition'):
        return False, "You need to log Condition before saving"
    if data['condition'] not in CONDITION_OPTIONS:
        return False, f"Invalid condition. Allowed: {', '.join(CONDITION_OPTIONS)}"
    return True, None


def validate_station_log(data: Dict[str, Any],
                         station_type: Optional[str] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate a station inspection form against the rules of its station type

    Access "No" needs nothing else. Otherwise:
    - BS: consumption, bait type and condition; dosage optional
    - RM / ST: capture (rodent count when Yes), replaced surface (RM) or
      triggered (ST), condition
    - LT: insect counts optional, replace bulb and condition

    Args:
        data: Form payload (stationId, stationType, access and the type's fields)
        station_type: Type of the station on the map; wins over data['stationType']

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_required_fields(data, ['stationId', 'access'])
    if not is_valid:
        return False, error

    station_id = data['stationId']
    if isinstance(station_id, bool) or not isinstance(station_id, int) or station_id < 1:
        return False, "stationId must be a positive integer"

    given_type = data.get('stationType')
    if given_type is not None and given_type not in STATION_TYPES:
        return False, f"Invalid station type. Allowed: {', '.join(STATION_TYPES)}"
    if given_type is not None and station_type is not None and given_type != station_type:
        return False, f"Station {station_id} is type {station_type}, not {given_type}"

    access = data['access']
    if access not in ACCESS_OPTIONS:
        return False, "You need to log Access before saving"

    if access == 'No':
        return True, None

    resolved = _resolve_type(data, station_type)
    if resolved in CAPTURE_STATION_TYPES:
        return _validate_capture_form(data, resolved)
    if resolved == 'LT':
        return _validate_light_trap_form(data)
    return _validate_bait_form(data)


def clean_station_log(data: Dict[str, Any], station_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Convert a validated inspection form into engine keyword arguments.

    Only the fields of the station's type are kept. With access "No" every
    measurement is left as None.
    """
    fields: Dict[str, Any] = {'access': data.get('access')}
    resolved = _resolve_type(data, station_type)

    if data.get('access') == 'No':
        pass
    elif resolved in CAPTURE_STATION_TYPES:
        fields['capture'] = data.get('capture')
        if data.get('capture') == 'Yes':
            fields['rodents_captured'] = _count_value(data.get('rodentsCaptured'))
        if resolved == 'RM':
            fields['replaced_surface'] = data.get('replacedSurface')
        else:
            fields['triggered'] = data.get('triggered')
        fields['condition'] = data.get('condition')
    elif resolved == 'LT':
        fields['mosquitoes'] = _count_value(data.get('mosquitoes'))
        fields['lepidoptera'] = _count_value(data.get('lepidoptera'))
        fields['drosophila'] = _count_value(data.get('drosophila'))
        fields['flies'] = _count_value(data.get('flies'))
        others = data.get('others')
        if others is not None:
            fields['others'] = tuple(sanitize_string(o, max_length=200) for o in others)
        fields['replace_bulb'] = data.get('replaceBulb')
        fields['condition'] = data.get('condition')
    else:
        fields['consumption'] = data.get('consumption')
        fields['bait_type'] = sanitize_string(data['baitType'], max_length=200)
        fields['condition'] = data.get('condition')
        fields['dosage_g'] = data.get('dosageG')

    fields['station_id'] = data['stationId']
    fields['station_type'] = station_type or data.get('stationType')
    return fields


def validate_finish_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate finish/retry options (confirmEmpty flag, notes)"""
    confirm = data.get('confirmEmpty')
    if confirm is not None and not isinstance(confirm, bool):
        return False, "confirmEmpty must be a boolean"

    notes = data.get('notes')
    if notes is not None:
        if not isinstance(notes, str):
            return False, "notes must be a string"
        if len(notes) > MAX_NOTES_LENGTH:
            return False, f"notes too long (maximum {MAX_NOTES_LENGTH} characters)"

    return True, None
