"""
Field Visit Routes Blueprint

Customer/map selection:
- /api/field-visit/customers: Load customers with their maps
- /api/field-visit/customers/<id>/select: Select a customer
- /api/field-visit/maps/<id>/select: Select one of the customer's maps

Station layout (edit mode):
- /api/field-visit/edit: Enter/leave edit mode
- /api/field-visit/stations: List or add stations
- /api/field-visit/stations/<id>: Remove a station
- /api/field-visit/stations/<id>/position: Drag a station
- /api/field-visit/stations/commit: Save the layout to the backend

Work session:
- /api/field-visit/session: Status and elapsed time
- /api/field-visit/session/start|log|finish|retry|cancel
- /api/field-visit/events: Recent session events
"""

import logging
from flask import Blueprint, abort, current_app, jsonify, request

from security import require_api_key
from services.visit_models import EditTool
from validators import (
    ValidationError,
    clean_station_log,
    validate_add_station_request,
    validate_finish_request,
    validate_reposition_request,
    validate_required_fields,
    validate_station_log,
)

logger = logging.getLogger(__name__)

# Create blueprint
field_visit_bp = Blueprint('field_visit_bp', __name__)


def get_engine():
    from app_init import get_engine as _get_engine
    return _get_engine(current_app)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _check(result):
    is_valid, error = result
    if not is_valid:
        raise ValidationError(error)


@field_visit_bp.before_request
@require_api_key
def _authorize():
    return None


# ============================================================================
# CUSTOMERS & MAPS
# ============================================================================

@field_visit_bp.route('/api/field-visit/customers', methods=['GET'])
def list_customers():
    """Load customers and their floor maps from the backend."""
    engine = get_engine()
    customers = engine.load_customers()
    return jsonify({
        'success': True,
        'customers': [
            {
                'customerId': c.customer_id,
                'customerName': c.customer_name,
                'maps': [{'mapId': m.map_id, 'name': m.name, 'stationCount': len(m.stations)}
                         for m in c.maps],
            }
            for c in customers
        ]
    })


@field_visit_bp.route('/api/field-visit/customers/<customer_id>/select', methods=['POST'])
def select_customer(customer_id):
    engine = get_engine()
    if engine.get_customer(customer_id) is None:
        abort(404)
    customer = engine.select_customer(customer_id)
    if customer is None:
        abort(409, description='Customer can only be changed while viewing')
    return jsonify({'success': True, 'customerId': customer.customer_id,
                    'maps': [m.to_dict() for m in customer.maps]})


@field_visit_bp.route('/api/field-visit/maps/<map_id>/select', methods=['POST'])
def select_map(map_id):
    engine = get_engine()
    if engine.registry.customer is None:
        abort(409, description='Select a customer first')
    floor_map = engine.select_map(map_id)
    if floor_map is None:
        if engine.registry.customer.get_map(map_id) is None:
            abort(404)
        abort(409, description='Leave edit mode before switching maps')
    return jsonify({
        'success': True,
        'map': floor_map.to_dict(),
        'imageUrl': floor_map.image_url(engine.uploads_url),
    })


# ============================================================================
# STATION LAYOUT
# ============================================================================

@field_visit_bp.route('/api/field-visit/edit', methods=['POST'])
def set_edit_mode():
    """Enter edit mode ({"editing": true, "tool": "add"|"remove"}) or leave it."""
    engine = get_engine()
    data = _json_body()
    if data.get('editing', True):
        tool = data.get('tool')
        if tool is not None and tool not in [t.value for t in EditTool]:
            raise ValidationError("tool must be 'add' or 'remove'", field='tool')
        if not engine.enter_edit_mode(EditTool(tool) if tool else None):
            abort(409, description='Edit mode needs a selected map and no work session')
    else:
        engine.exit_edit_mode()
    return jsonify({'success': True, 'mode': engine.mode.name})


@field_visit_bp.route('/api/field-visit/stations', methods=['GET'])
def list_stations():
    engine = get_engine()
    return jsonify({
        'success': True,
        'mapId': engine.registry.active_map_id,
        'stations': [s.to_dict() for s in engine.registry.stations],
    })


@field_visit_bp.route('/api/field-visit/stations', methods=['POST'])
def add_station():
    """Place a station where the map image was tapped."""
    engine = get_engine()
    data = _json_body()
    _check(validate_add_station_request(data))

    station = engine.add_station(
        data['tapX'], data['tapY'], data['referenceDimension'],
        station_type=data.get('type') or 'BS',
        reference_height=data.get('referenceHeight'),
        scale=data.get('scale') or 1.0,
    )
    if station is None:
        abort(409, description='Stations can only be added in edit mode')
    return jsonify({'success': True, 'station': station.to_dict()}), 201


@field_visit_bp.route('/api/field-visit/stations/<int:station_id>', methods=['DELETE'])
def remove_station(station_id):
    engine = get_engine()
    if engine.mode.name != 'editing':
        abort(409, description='Stations can only be removed in edit mode')
    removed = engine.remove_station(station_id)
    return jsonify({'success': True, 'removed': removed is not None})


@field_visit_bp.route('/api/field-visit/stations/<int:station_id>/position', methods=['PUT'])
def reposition_station(station_id):
    engine = get_engine()
    data = _json_body()
    _check(validate_reposition_request(data))
    if engine.mode.name != 'editing':
        abort(409, description='Stations can only be moved in edit mode')

    station = engine.reposition_station(
        station_id, data['rawX'], data['rawY'], data['referenceDimension'],
        offset_x=data.get('offsetX') or 0.0,
        offset_y=data.get('offsetY') or 0.0,
        reference_height=data.get('referenceHeight'),
        scale=data.get('scale') or 1.0,
    )
    if station is None:
        abort(404)
    return jsonify({'success': True, 'station': station.to_dict()})


@field_visit_bp.route('/api/field-visit/stations/commit', methods=['POST'])
def commit_stations():
    """Save the station layout; a failed save keeps the local edits."""
    engine = get_engine()
    result = engine.commit_stations()
    if result is None:
        abort(409, description='Finish or cancel the work session before saving the layout')
    return jsonify(result.to_dict()), 200 if result.success else 502


# ============================================================================
# WORK SESSION
# ============================================================================

@field_visit_bp.route('/api/field-visit/session', methods=['GET'])
def session_status():
    return jsonify({'success': True, **get_engine().status()})


@field_visit_bp.route('/api/field-visit/session/start', methods=['POST'])
def start_session():
    engine = get_engine()
    data = _json_body()
    _check(validate_required_fields(data, ['technicianId']))

    if engine.controller.session is not None:
        # already running: same session, unchanged start time
        return jsonify({'success': True, 'started': False, **engine.status()})

    session = engine.start_session(
        str(data['technicianId']),
        technician_name=data.get('technicianName') or '',
        appointment_id=data.get('appointmentId'),
    )
    if session is None:
        abort(409, description='Select a customer and leave edit mode before starting work')
    return jsonify({'success': True, 'started': True, **engine.status()})


@field_visit_bp.route('/api/field-visit/session/log', methods=['POST'])
def log_station():
    """Record a station inspection form during the active session."""
    engine = get_engine()
    data = _json_body()

    # the form rules depend on the type of the station on the map
    station_id = data.get('stationId')
    station = engine.registry.get_station(station_id) if isinstance(station_id, int) else None
    if station is None and isinstance(station_id, int) and not isinstance(station_id, bool):
        abort(404, description=f'Station {station_id} is not on the selected map')
    station_type = station.type if station else None
    _check(validate_station_log(data, station_type))

    entry = engine.record_station_log(**clean_station_log(data, station_type))
    if entry is None:
        abort(409, description='Start work first to log station data')
    return jsonify({'success': True, 'entry': entry.to_payload(),
                    'entryCount': len(engine.visit_logger)}), 201


@field_visit_bp.route('/api/field-visit/session/finish', methods=['POST'])
def finish_session():
    engine = get_engine()
    data = _json_body()
    _check(validate_finish_request(data))

    result = engine.finish_session(
        confirm_empty=bool(data.get('confirmEmpty')),
        notes=data.get('notes') or '',
    )
    if result is None:
        abort(409, description='No active work session to finish')
    return _submission_response(result)


@field_visit_bp.route('/api/field-visit/session/retry', methods=['POST'])
def retry_submission():
    engine = get_engine()
    result = engine.retry_submission()
    if result is None:
        abort(409, description='No failed submission to retry')
    return _submission_response(result)


@field_visit_bp.route('/api/field-visit/session/cancel', methods=['POST'])
def cancel_session():
    """Discard the work session. Requires {"confirmed": true}."""
    engine = get_engine()
    data = _json_body()
    if data.get('confirmed') is not True:
        raise ValidationError("Cancelling discards all unsaved station data; send confirmed=true",
                              field='confirmed')
    cancelled = engine.cancel_session()
    return jsonify({'success': True, 'cancelled': cancelled})


@field_visit_bp.route('/api/field-visit/events', methods=['GET'])
def recent_events():
    limit = request.args.get('limit', default=50, type=int)
    return jsonify({'success': True, 'events': get_engine().events.get_recent_events(limit)})


def _submission_response(result):
    if result.success:
        status_code = 200
    elif result.needs_confirmation:
        status_code = 409
    else:
        status_code = 502
    return jsonify(result.to_dict()), status_code
