import json
import os
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Dict, Any, Optional
from datetime import datetime
from flask import Flask, request, jsonify

from jamcraft.application.dedup import DedupCache
from jamcraft.application.pipeline import IngestionPipeline
from jamcraft.crosscutting.config import Settings
from jamcraft.crosscutting.logging import log_error
from jamcraft.domain.entities import InboundMessage
from jamcraft.infrastructure.providers.slack import is_user_message, verify_signature


VERSION = "0.1.0"


class HTTPServer:
    """HTTP server for jamcraft: Slack Events API endpoint plus health checks."""

    def __init__(self,
                 settings: Settings,
                 pipeline: IngestionPipeline,
                 channel_id: str,
                 executor: Optional[Executor] = None,
                 event_cache: Optional[DedupCache] = None):
        """Initialize HTTP server.

        Args:
            settings: Process configuration
            pipeline: Pipeline that handles accepted messages
            channel_id: ID of the watched channel
            executor: Worker pool for message processing, created when omitted
            event_cache: Recently seen Slack event IDs, created when omitted
        """
        self.settings = settings
        self.pipeline = pipeline
        self.channel_id = channel_id
        self.host = settings.host
        self.port = settings.port
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.worker_threads,
            thread_name_prefix='jamcraft-worker',
        )
        self.event_cache = event_cache if event_cache is not None else DedupCache()
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        # Version info
        self.version = VERSION
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'jamcraft Slack playlist bot',
                'version': self.version,
                'channel_id': self.channel_id,
                'endpoints': {
                    'health': '/health',
                    'slack_events': '/slack/events'
                },
                'config': self.settings.summary()
            }), 200

        @self.app.route('/slack/events', methods=['POST'])
        def slack_events():
            """Slack Events API endpoint."""
            return self._handle_slack_event(request.get_data(), request.headers)

    def _verify(self, headers, body: bytes) -> bool:
        return verify_signature(
            self.settings.slack_signing_secret,
            headers.get('X-Slack-Request-Timestamp'),
            headers.get('X-Slack-Signature'),
            body,
        )

    def _handle_slack_event(self, body: bytes, headers):
        try:
            envelope = json.loads(body)
        except ValueError as e:
            self.logger.warning(f"Failed to parse Slack event body: {e}")
            return jsonify({}), 200

        if not isinstance(envelope, dict):
            self.logger.warning("Slack event body is not a JSON object")
            return jsonify({}), 200

        if envelope.get('type') == 'url_verification':
            # Slack needs the challenge answered while the app is being set up
            if self._verify(headers, body):
                self.logger.info("Signature verification passed for url_verification")
            else:
                self.logger.warning("Signature verification failed for url_verification, responding to challenge anyway")
            challenge = envelope.get('challenge')
            if challenge is None:
                self.logger.warning("url_verification event without challenge field")
                return jsonify({}), 200
            return jsonify({'challenge': challenge}), 200

        if not headers.get('X-Slack-Request-Timestamp') or not headers.get('X-Slack-Signature'):
            self.logger.warning("Missing Slack signature headers")
            return jsonify({'error': 'missing signature headers'}), 400

        if not self._verify(headers, body):
            self.logger.warning("Invalid Slack request signature")
            return jsonify({'error': 'invalid signature'}), 401

        if envelope.get('type') == 'event_callback':
            self._dispatch(envelope)

        return jsonify({}), 200

    def _dispatch(self, envelope: Dict[str, Any]) -> None:
        event = envelope.get('event') or {}
        if event.get('type') != 'message' or not is_user_message(event):
            return

        channel = event.get('channel')
        if channel != self.channel_id:
            self.logger.debug(f"Ignoring message from channel {channel}")
            return

        text = event.get('text')
        ts = event.get('ts')
        if not text or not ts:
            return

        event_id = envelope.get('event_id')
        if event_id and not self.event_cache.check_and_mark(event_id):
            self.logger.info(f"Ignoring redelivered event {event_id}")
            return

        message = InboundMessage(channel_id=channel, text=text, thread_ref=ts, event_id=event_id)
        try:
            self.executor.submit(self._process, message)
        except RuntimeError as e:
            # The pool refuses work once shutdown() has run
            self.logger.warning(f"Dropping event {event_id} during shutdown: {e}")

    def _process(self, message: InboundMessage) -> None:
        try:
            self.pipeline.process(message)
        except Exception as e:
            log_error(self.logger, "Message processing failed", e)

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting jamcraft HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            threaded=True
        )

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting work in the worker pool."""
        self.executor.shutdown(wait=wait)
