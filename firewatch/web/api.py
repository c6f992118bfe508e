# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""REST API endpoints for Fire Watch.

Provides JSON API for:
- Health check
- Real-time status (verdict, reading, connectivity, telemetry counters)
- Current display lines
"""

import logging
from datetime import datetime

from flask import Blueprint, g, jsonify

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)


def _iso(value):
    return value.isoformat() if value else None


# ==================== Health Check ====================

@api_bp.route('/health')
def health():
    """Health check endpoint."""
    return jsonify({
        'status': 'ok',
        'timestamp': datetime.now().isoformat(),
    })


# ==================== Status ====================

@api_bp.route('/status')
def get_status():
    """Get current system status."""
    if not g.monitor:
        return jsonify({'error': 'Monitor not available'}), 503

    status = g.monitor.get_status()
    alert = status.alert_state
    reading = status.current_reading
    telemetry = status.telemetry

    return jsonify({
        'timestamp': status.timestamp.isoformat(),
        'device_id': g.config.device.device_id if g.config else None,
        'state': alert.level.value if alert else None,
        'state_timestamp': _iso(alert.timestamp) if alert else None,
        'reading': reading.to_dict() if reading else None,
        'connectivity': {
            'phase': status.connectivity.phase.value,
            'retry_count': status.connectivity.retry_count,
            'network_up': status.connectivity.network_up,
            'cloud_ready': status.connectivity.cloud_ready,
        },
        'telemetry': {
            'ok': telemetry.ok,
            'skipped': telemetry.skipped,
            'failed': telemetry.failed,
            'last_result': telemetry.last_result.value if telemetry.last_result else None,
            'last_publish_time': _iso(telemetry.last_publish_time),
        },
        'display': list(status.display_lines),
        'read_failures': status.read_failures,
        'cycles': status.cycles,
        'uptime_seconds': int(status.uptime_seconds),
    })


# ==================== Display ====================

@api_bp.route('/display')
def get_display():
    """Get the lines currently shown on the display."""
    if not g.display:
        return jsonify({'error': 'Display not available'}), 503

    return jsonify({
        'lines': list(g.display.lines),
        'rendered_at': _iso(g.display.rendered_at),
    })
