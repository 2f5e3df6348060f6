#!/usr/bin/env python3
"""
Dashboard Patcher web server

Small admin panel: paste a MongoDB connection string, look at the dashboards
collection and edit the single dashboard record. No authentication - for
local/operator use only.
"""

import argparse
import signal
import threading
import traceback
from datetime import datetime, UTC
from typing import Optional

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.serving import make_server

from config import get_settings, Settings
from api.errors import PatcherError, StateError, ValidationError, UpstreamError
from api.logger import get_logger, LogCategory, mask_uri
from api.validation import parse_connect_request, parse_dashboard_update, validate_object_id
from utils.database_manager import ConnectionManager, get_connection_manager


class InFlightRequests:
    """Counts requests currently being handled so shutdown can wait for them."""

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        return self._count

    def enter(self):
        with self._cond:
            self._count += 1

    def leave(self):
        with self._cond:
            self._count -= 1
            if self._count <= 0:
                self._count = 0
                self._cond.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no request is in flight. False if the timeout expired first."""
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)


def _manager() -> ConnectionManager:
    return current_app.extensions['connection_manager']


def _json_body():
    """Request JSON, {} for an empty body."""
    if not request.get_data():
        return {}
    body = request.get_json(silent=True, force=True)
    if body is None:
        raise ValidationError("Request body must be valid JSON")
    return body


def create_app(manager: Optional[ConnectionManager] = None,
               config: Optional[Settings] = None) -> Flask:
    """Build the Flask application around a connection manager."""
    config = config or get_settings()
    app = Flask(__name__,
                static_folder=str(config.get_static_path()),
                static_url_path='')
    origins = config.server.cors_allowed_origins
    # flask-cors 6 echoes the request origin unless asked for a literal wildcard
    CORS(app, origins=origins, send_wildcard='*' in origins)
    app.config['PATCHER_SETTINGS'] = config

    app.extensions['connection_manager'] = manager or get_connection_manager()
    in_flight = InFlightRequests()
    app.extensions['in_flight'] = in_flight

    @app.before_request
    def track_request_start():
        in_flight.enter()

    @app.teardown_request
    def track_request_end(exc):
        in_flight.leave()

    @app.after_request
    def add_security_headers(response):
        for header, value in config.server.security_headers.items():
            response.headers.setdefault(header, value)
        return response

    @app.route('/')
    def index():
        return app.send_static_file('index.html')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'timestamp': datetime.now(UTC).isoformat()})

    @app.route('/api/connect', methods=['POST'])
    def connect():
        """Replace the current connection with one to the given URI."""
        payload = parse_connect_request(_json_body())
        _manager().connect(payload.uri)

        get_logger().info(LogCategory.CONNECTION, "connect",
                          f"Connected to {mask_uri(payload.uri)}")
        return jsonify({'success': True, 'message': 'Connected to MongoDB successfully'})

    @app.route('/api/dashboards')
    def list_dashboards():
        manager = _manager()
        if not manager.is_connected():
            raise StateError()

        dashboards = manager.list_dashboards()
        return jsonify({
            'success': True,
            'count': len(dashboards),
            'dashboards': dashboards
        })

    @app.route('/api/dashboards/<dashboard_id>', methods=['PUT'])
    def update_dashboard(dashboard_id):
        """Set guildID, url and port on one dashboard record."""
        manager = _manager()
        # State is checked before the id so a valid id never reports not-found while disconnected
        if not manager.is_connected():
            raise StateError()

        validate_object_id(dashboard_id)
        update = parse_dashboard_update(_json_body())
        modified_count = manager.update_dashboard(dashboard_id, update)

        return jsonify({
            'success': True,
            'message': 'Dashboard updated successfully',
            'modifiedCount': modified_count
        })

    @app.route('/api/disconnect', methods=['POST'])
    def disconnect():
        _manager().disconnect()
        return jsonify({'success': True, 'message': 'Disconnected from MongoDB'})

    @app.errorhandler(PatcherError)
    def handle_patcher_error(e):
        logger = get_logger()
        if isinstance(e, UpstreamError):
            logger.error(LogCategory.HTTP, "upstream_error",
                         f"{request.method} {request.path}: {e.message}", error=e.details)
        else:
            category = LogCategory.VALIDATION if isinstance(e, ValidationError) else LogCategory.HTTP
            logger.info(category, e.code,
                        f"{request.method} {request.path} rejected: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if not request.path.startswith('/api/'):
            return e
        code = 'route_not_found' if e.code == 404 else 'http_error'
        return jsonify({'success': False, 'error': e.description, 'code': code}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        get_logger().error(LogCategory.HTTP, "internal_error",
                           f"Unhandled error on {request.method} {request.path}: {str(e)}",
                           error=traceback.format_exc())
        return jsonify({
            'success': False,
            'error': 'Internal server error',
            'code': 'internal_error'
        }), 500

    return app


def serve(app: Flask, host: str, port: int, grace_seconds: float) -> None:
    """Run until SIGINT/SIGTERM, then drain requests and close the database client."""
    logger = get_logger()
    server = make_server(host, port, app, threaded=True)
    stop = threading.Event()

    def signal_handler(signum, frame):
        logger.info(LogCategory.SYSTEM, "shutdown_signal",
                    f"{signal.Signals(signum).name} received. Closing server gracefully...")
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker = threading.Thread(target=server.serve_forever, name="patcher-http", daemon=True)
    worker.start()
    logger.info(LogCategory.SYSTEM, "startup",
                f"{app.config['PATCHER_SETTINGS'].server.title} server running on http://{host}:{port}")

    while not stop.wait(1.0):
        pass

    server.shutdown()
    server.server_close()
    logger.info(LogCategory.SYSTEM, "http_closed", "HTTP server closed.")

    if not app.extensions['in_flight'].wait_idle(grace_seconds):
        logger.warning(LogCategory.SYSTEM, "drain_timeout",
                       f"{app.extensions['in_flight'].count} request(s) still running after {grace_seconds}s")

    app.extensions['connection_manager'].disconnect()
    logger.info(LogCategory.SYSTEM, "shutdown_complete", "Shutdown complete")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Dashboard Patcher admin panel")
    parser.add_argument('--host', help="Interface to bind (default: server.host)")
    parser.add_argument('--port', type=int, help="Port to listen on (default: server.port)")
    parser.add_argument('--env', help="Configuration environment to load, e.g. development")
    args = parser.parse_args(argv)

    config = get_settings(args.env, force_reload=True) if args.env else get_settings()
    host = args.host if args.host is not None else config.server.host
    port = args.port if args.port is not None else config.server.port

    display_host = 'localhost' if host in ('0.0.0.0', '') else host
    print(f"Starting {config.server.title} on http://{display_host}:{port}")
    print("No authentication required - for local use only")
    app = create_app(ConnectionManager(config), config)
    serve(app, host, port, config.server.shutdown_grace_seconds)


if __name__ == '__main__':
    main()
