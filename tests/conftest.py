"""Shared fixtures: a fake Loki push endpoint served on an ephemeral port."""

import threading

import pytest
from flask import Flask, request
from werkzeug.serving import make_server


class FakeLoki:
    """Records push requests and answers with scripted statuses."""

    def __init__(self):
        self.requests: list[dict] = []
        self.statuses: list[int] = []
        self.error_body = "something went wrong"
        self._lock = threading.Lock()
        self.app = self._create_app()
        self._server = None
        self._thread = None
        self.base_url = ""

    def _create_app(self) -> Flask:
        app = Flask(__name__)

        @app.route("/loki/api/v1/push", methods=["POST"])
        @app.route("/<path:prefix>/loki/api/v1/push", methods=["POST"])
        def push(prefix=None):
            auth = request.authorization
            record = {
                "path": request.path,
                "body": request.get_data(),
                "json": request.get_json(force=True),
                "content_type": request.content_type,
                "auth": (auth.username, auth.password) if auth else None,
            }
            with self._lock:
                self.requests.append(record)
                status = self.statuses.pop(0) if self.statuses else 204
            if status >= 300:
                return self.error_body, status
            return "", status

        return app

    def start(self):
        self._server = make_server("127.0.0.1", 0, self.app, threaded=True)
        host, port = self._server.server_address[:2]
        self.base_url = f"http://{host}:{port}"
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        self._server.shutdown()
        self._thread.join(timeout=5)

    @property
    def push_url(self) -> str:
        return self.base_url + "/loki/api/v1/push"

    def received_lines(self) -> list[str]:
        with self._lock:
            return [
                value[1]
                for req in self.requests
                for stream in req["json"]["streams"]
                for value in stream["values"]
            ]


@pytest.fixture
def fake_loki():
    server = FakeLoki()
    server.start()
    yield server
    server.stop()
