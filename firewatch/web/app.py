# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Flask application factory for the Fire Watch status server.

The server is read-only and meant for the local network: it exposes the
monitor's status snapshot and the lines currently on the display.

Usage:
    from firewatch.web.app import create_app

    app = create_app(config, monitor, display)
    app.run()
"""

import logging

from flask import Flask, g

logger = logging.getLogger(__name__)


def create_app(config, monitor=None, display=None):
    """Create and configure Flask application.

    Args:
        config: Application configuration object
        monitor: FireWatchMonitor instance (for live data)
        display: WebDisplay instance (for the rendered display lines)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Store references to core components
    app.config['MONITOR'] = monitor
    app.config['DISPLAY'] = display
    app.config['APP_CONFIG'] = config

    from firewatch.web.api import api_bp

    app.register_blueprint(api_bp, url_prefix='/api')

    @app.before_request
    def before_request():
        """Make components available to handlers."""
        g.monitor = app.config.get('MONITOR')
        g.display = app.config.get('DISPLAY')
        g.config = app.config.get('APP_CONFIG')

    logger.info("Flask application created")
    return app


def run_app(app, host: str = '0.0.0.0', port: int = 5000):
    """Run the Flask application (blocking; call from a thread).

    Args:
        app: Flask application instance
        host: Host to bind to
        port: Port to listen on
    """
    logger.info(f"Starting web server on {host}:{port}")
    app.run(host=host, port=port, debug=False, threaded=True, use_reloader=False)
