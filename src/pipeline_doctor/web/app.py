"""
HTTP receiver for Pipeline Doctor.

Accepts event-bus envelopes over HTTP for deployments that forward events
through an API destination or a webhook instead of invoking the Lambda
handler directly.

Endpoints:
    POST /events                 One envelope or a JSON list of envelopes
    GET  /incidents/<identity>   Stored retry state for an incident
    GET  /health                 Liveness and version
    GET  /metrics                Prometheus text exposition
"""
import asyncio
import hashlib
import hmac
import json
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request

from ..api.health import get_health_status
from ..controller import IncidentController
from ..exceptions import DoctorError, EventParseError
from ..logging_context import LoggingContext
from ..metrics import get_metrics_text
from ..storage.incident_store import IncidentStore

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Doctor-Signature"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """
    Verify an HMAC-SHA256 signature over the raw request body.

    Accepts both a bare hex digest and the ``sha256=<digest>`` form.
    """
    if not signature:
        return False

    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    if signature.startswith("sha256="):
        signature = signature[7:]

    # Constant-time comparison
    return hmac.compare_digest(expected, signature)


def create_app(
    controller: IncidentController,
    store: Optional[IncidentStore] = None,
    webhook_secret: Optional[str] = None,
    debug: bool = False
) -> Flask:
    """
    Create Flask application for the HTTP receiver.

    Args:
        controller: Controller that handles inbound envelopes
        store: Store used for incident lookups (defaults to the controller's)
        webhook_secret: When set, POST /events requires a valid signature
        debug: Enable debug mode

    Returns:
        Flask app instance
    """
    app = Flask(__name__)
    app.config['DEBUG'] = debug
    # EventBridge caps events at 256KB; allow a small batch
    app.config['MAX_CONTENT_LENGTH'] = 4 * 1024 * 1024

    incident_store = store or controller.store

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    @app.route('/events', methods=['POST'])
    def receive_events():
        """Handle one envelope or a list of envelopes."""
        body = request.get_data()

        if webhook_secret and not verify_signature(
            webhook_secret, body, request.headers.get(SIGNATURE_HEADER)
        ):
            logger.warning(f"Rejected event delivery with bad signature from {request.remote_addr}")
            return jsonify({'error': 'Invalid signature'}), 401

        try:
            payload = json.loads(body)
        except ValueError as e:
            return jsonify({'error': f'Invalid JSON body: {e}'}), 400

        envelopes = payload if isinstance(payload, list) else [payload]
        request_id = request.headers.get('X-Request-Id')

        results = []
        try:
            with LoggingContext(request_id=request_id):
                for envelope in envelopes:
                    outcome = asyncio.run(controller.handle_envelope(envelope))
                    results.append(outcome.to_dict())
        except EventParseError as e:
            logger.warning(f"Malformed envelope: {e}")
            return jsonify({'error': str(e), 'processed': results}), 400
        except DoctorError as e:
            # Store, orchestrator or notifier failure; the sender should redeliver
            logger.error(f"Event handling failed: {e}", exc_info=True)
            return jsonify({'error': str(e), 'processed': results}), 502

        if isinstance(payload, list):
            return jsonify({'results': results})
        return jsonify(results[0])

    @app.route('/incidents/<path:identity>')
    def get_incident(identity: str):
        """Return the stored retry state for an incident identity."""
        try:
            incident = asyncio.run(incident_store.get(identity))
        except DoctorError as e:
            logger.error(f"Incident lookup failed for {identity}: {e}")
            return jsonify({'error': str(e)}), 502

        if incident is None:
            return jsonify({'error': f'No incident recorded for {identity}'}), 404
        return jsonify(incident.to_dict())

    @app.route('/health')
    def health():
        """Health check endpoint."""
        return jsonify(get_health_status())

    @app.route('/metrics')
    def metrics():
        """Prometheus scrape endpoint."""
        return Response(get_metrics_text(), mimetype='text/plain; version=0.0.4')

    return app


def run_server(
    controller: IncidentController,
    host: str = '127.0.0.1',
    port: int = 8080,
    webhook_secret: Optional[str] = None,
    debug: bool = False
):
    """
    Run the HTTP receiver.

    Args:
        controller: Controller that handles inbound envelopes
        host: Host to bind to
        port: Port to listen on
        webhook_secret: Optional HMAC secret for POST /events
        debug: Enable debug mode
    """
    app = create_app(controller, webhook_secret=webhook_secret, debug=debug)
    if not webhook_secret:
        logger.warning("No webhook secret configured; POST /events is unauthenticated")
    logger.info(f"Starting Pipeline Doctor receiver on {host}:{port}")
    app.run(host=host, port=port, debug=debug)
