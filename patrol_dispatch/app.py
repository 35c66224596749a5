from flask import Flask, request, jsonify
from flask_socketio import SocketIO, emit
import logging
import os
import time
from datetime import datetime, timezone

from patrol_dispatch.config import settings
from patrol_dispatch.fleet_state import incident_store
from patrol_dispatch.incidents import parse_incident_payload
from patrol_dispatch.projection import (
    latest_assignments,
    parse_time,
    project_busy_unit,
    render_fleet,
    render_idle_unit,
)
from patrol_dispatch.simulation import format_unit_id, parse_unit_id, position_at_time

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SECRET_KEY'] = settings.secret_key


# Auto-detect async mode: use gevent in production (gunicorn/Cloud Run), threading locally
def get_async_mode():
    """Auto-detect the best async mode based on environment."""
    if settings.async_mode:
        return settings.async_mode
    if 'gunicorn' in os.environ.get('SERVER_SOFTWARE', ''):
        return 'gevent'
    if os.environ.get('K_SERVICE'):
        return 'gevent'
    return 'threading'


async_mode = get_async_mode()
logger.info(f"[SocketIO] Using async_mode: {async_mode}")
socketio = SocketIO(app, cors_allowed_origins="*", async_mode=async_mode)

# Track connected clients
connected_clients = {}

# Performance monitoring
performance_stats = {
    "total_requests": 0,
    "fleet_status_requests": 0,
    "dispatch_requests": 0,
    "websocket_events": 0,
    "average_response_time": 0.0,
}


def _record_response_time(start_time: float):
    performance_stats["total_requests"] += 1
    execution_time = time.time() - start_time
    performance_stats["average_response_time"] = (
        (performance_stats["average_response_time"] * (performance_stats["total_requests"] - 1) + execution_time)
        / performance_stats["total_requests"]
    )


def _requested_time() -> datetime:
    """The ?at= instant to replay, or the current time."""
    at = request.args.get('at')
    if not at:
        return datetime.now(timezone.utc)
    return parse_time(at)


def fleet_status(now: datetime):
    """Every unit at `now`, with busy units projected toward their incidents."""
    assignments = latest_assignments(incident_store.open_assignment_records(at=now), now, settings.fleet_size)
    return [unit.to_dict() for unit in render_fleet(now, assignments, settings.fleet_size)]


# =============================================================================
# HTTP REST ENDPOINTS
# =============================================================================

@app.route('/health', methods=['GET'])
def health_check():
    return jsonify({
        "status": "healthy",
        "websocket_enabled": True,
        "connected_clients": len(connected_clients),
        "fleet_size": settings.fleet_size,
        "path_kind": settings.path_kind,
    }), 200


@app.route('/units', methods=['GET'])
def get_units():
    """Fleet status; ?at=<ISO 8601> replays any instant."""
    start_time = time.time()
    try:
        now = _requested_time()
    except ValueError:
        return jsonify({"error": "at must be an ISO 8601 timestamp"}), 400

    try:
        vehicles = fleet_status(now)
        performance_stats["fleet_status_requests"] += 1
        _record_response_time(start_time)
        return jsonify({"vehicles": vehicles, "timestamp": now.isoformat()}), 200
    except Exception as e:
        app.logger.error(f"Error computing fleet status: {str(e)}")
        return jsonify({"error": str(e)}), 500


@app.route('/units/<unit_id>', methods=['GET'])
def get_unit(unit_id):
    """Single unit status; 404 for malformed or unknown ids."""
    try:
        now = _requested_time()
    except ValueError:
        return jsonify({"error": "at must be an ISO 8601 timestamp"}), 400

    index = parse_unit_id(unit_id, settings.fleet_size)
    if index is None:
        return jsonify({"error": f"Unit not found: {unit_id}"}), 404

    assignments = latest_assignments(incident_store.open_assignment_records(at=now), now, settings.fleet_size)
    assignment = assignments.get(format_unit_id(index))
    if assignment is not None:
        return jsonify(project_busy_unit(index, assignment, now).to_dict()), 200

    return jsonify(render_idle_unit(position_at_time(index, now), now).to_dict()), 200


@app.route('/incidents', methods=['GET'])
def list_incidents():
    include_resolved = request.args.get('include_resolved', 'true').lower() != 'false'
    now = datetime.now(timezone.utc)
    incidents = incident_store.list_incidents(include_resolved=include_resolved)
    return jsonify({"data": [i.to_dict(now) for i in incidents]}), 200


@app.route('/incidents', methods=['POST'])
def create_incident():
    """Report an incident and dispatch the nearest available unit."""
    start_time = time.time()

    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "No JSON data provided"}), 400

    try:
        report = parse_incident_payload(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        incident = incident_store.create_incident(report)
    except Exception as e:
        app.logger.error(f"Error creating incident: {str(e)}")
        return jsonify({"error": f"Failed to create record: {e}"}), 500

    performance_stats["dispatch_requests"] += 1
    _record_response_time(start_time)

    payload = incident.to_dict()
    socketio.emit('incident:dispatched', {
        'incident_id': incident.id,
        'assigned_unit_id': incident.assigned_unit_id,
        'assigned_at': payload['assigned_at'],
        'location': incident.location.to_dict(),
    })

    return jsonify({"data": payload}), 201


@app.route('/incidents/<incident_id>/resolve', methods=['POST'])
def resolve_incident(incident_id):
    incident = incident_store.resolve_incident(incident_id)
    if incident is None:
        return jsonify({"error": f"Incident not found: {incident_id}"}), 404

    socketio.emit('incident:resolved', {
        'incident_id': incident.id,
        'released_unit_id': incident.assigned_unit_id,
    })
    return jsonify({"data": incident.to_dict()}), 200


@app.route('/incidents/clear', methods=['POST'])
def clear_incidents():
    """Clear all incident state."""
    incident_store.clear()
    return jsonify({
        "message": "Incident state cleared",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }), 200


@app.route('/fleet-state', methods=['GET'])
def get_fleet_state():
    """Busy units and open incidents."""
    return jsonify(incident_store.get_state_summary()), 200


@app.route('/stats', methods=['GET'])
def get_stats():
    return jsonify({
        **performance_stats,
        "store": incident_store.get_stats(),
        "connected_websocket_clients": len(connected_clients),
    }), 200


@app.route('/config', methods=['GET'])
def get_config():
    return jsonify(settings.to_dict()), 200


# =============================================================================
# SOCKET.IO EVENT HANDLERS
# =============================================================================

@socketio.on('connect')
def handle_connect():
    """Handle new client connection."""
    client_id = request.sid
    connected_clients[client_id] = {
        'connected_at': datetime.now(timezone.utc).isoformat(),
        'events_received': 0
    }
    logger.info(f"[WebSocket] Client connected: {client_id}")
    emit('connection_established', {
        'client_id': client_id,
        'server_time': datetime.now(timezone.utc).isoformat(),
        'available_events': [
            'fleet:status_request',
            # Broadcasts
            'incident:dispatched',
            'incident:resolved',
        ]
    })


@socketio.on('disconnect')
def handle_disconnect():
    client_id = request.sid
    connected_clients.pop(client_id, None)
    logger.info(f"[WebSocket] Client disconnected: {client_id}")


@socketio.on('fleet:status_request')
def handle_fleet_status_request(data=None):
    """
    Fleet status over the socket; dashboards poll this instead of HTTP.
    Payload: { at?: ISO 8601 }
    """
    performance_stats["websocket_events"] += 1
    if request.sid in connected_clients:
        connected_clients[request.sid]['events_received'] += 1

    if data is not None and not isinstance(data, dict):
        emit('fleet:error', {'error': 'payload must be an object'})
        return

    at = (data or {}).get('at')
    try:
        if at is not None and not isinstance(at, str):
            raise ValueError(at)
        now = parse_time(at) if at else datetime.now(timezone.utc)
    except ValueError:
        emit('fleet:error', {'error': 'at must be an ISO 8601 timestamp'})
        return

    emit('fleet:status', {'vehicles': fleet_status(now), 'timestamp': now.isoformat()})


def main():
    logger.info(f"[PatrolDispatch] Serving {settings.fleet_size} units "
                f"({settings.path_kind} paths) on port {settings.port}")
    socketio.run(app, host='0.0.0.0', port=settings.port, debug=False, allow_unsafe_werkzeug=True)


if __name__ == '__main__':
    main()
