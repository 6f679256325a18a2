from __future__ import annotations

import asyncio
import atexit
import logging
import threading
import uuid
from typing import Any, Coroutine, Optional, TypeVar

from flask import Flask, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from automation.cipher import Cipher
from automation.errors import AutomationError, IdentityNotFound
from automation.identity import StaticIdentityDirectory
from automation.models import AddCardRequest
from automation.service import CardAutomationService
from automation.store import SqliteAuditStore
from driver.artifacts import DirectoryArtifactSink
from driver.config import RunConfig, ensure_runtime_directories, load_config
from driver.structured_logging import configure_logging

app = Flask(__name__)
log = logging.getLogger("automation.web")

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10

_service: CardAutomationService | None = None
_service_lock = threading.Lock()

# One background loop; every request submits its attempt as a separate task.
LOOP = asyncio.new_event_loop()
_loop_thread = threading.Thread(target=LOOP.run_forever, name="automation-loop", daemon=True)
_loop_thread.start()


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run_coroutine_threadsafe(coro, LOOP).result()


def build_service(config: Optional[RunConfig] = None) -> CardAutomationService:
    config = config or load_config()
    dirs = ensure_runtime_directories(config)
    configure_logging(dirs["logs"])
    if config.identities_path is not None:
        identities = StaticIdentityDirectory.from_json_file(config.identities_path)
    else:
        log.warning("No identities file configured; every subject will be reported as not found")
        identities = StaticIdentityDirectory()
    return CardAutomationService(
        config,
        SqliteAuditStore(config.database_path),
        identities,
        Cipher(config.encryption_key),
        DirectoryArtifactSink(config.artifact_root),
    )


def _get_service() -> CardAutomationService:
    global _service
    with _service_lock:
        if _service is None:
            _service = build_service()
        return _service


@atexit.register
def _shutdown_loop() -> None:  # pragma: no cover - shutdown hook
    LOOP.call_soon_threadsafe(LOOP.stop)


def _error(status: int, code: str, message: str, **extra: Any):
    correlation_id = str(uuid.uuid4())[:8]
    payload = {"error": {"code": code, "message": message}, "correlation_id": correlation_id}
    payload.update(extra)
    return jsonify(payload), status


@app.errorhandler(Exception)
def handle_exception(error):  # pragma: no cover - defensive handler
    if isinstance(error, HTTPException):
        return error
    correlation_id = str(uuid.uuid4())[:8]
    log.exception("[%s] Uncaught exception: %s", correlation_id, error)
    return jsonify(
        {
            "error": {"code": "INTERNAL_ERROR", "message": str(error)},
            "correlation_id": correlation_id,
        }
    ), 500


@app.post("/automation/add-card")
def add_card():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _error(400, "INVALID_REQUEST", "JSON object body required")
    try:
        card_request = AddCardRequest.model_validate(body)
    except ValidationError as exc:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors(include_input=False)
        ]
        return _error(400, "INVALID_REQUEST", "Request validation failed", details=details)

    service = _get_service()
    try:
        record = _run(service.add_card(card_request))
    except IdentityNotFound as exc:
        return _error(404, exc.code, exc.message)
    except AutomationError as exc:
        log.error("Automation failed for %s: %s", card_request.subject_id, exc)
        return _error(500, exc.code, exc.message)
    return jsonify(record.public_dict()), 201


@app.get("/automation/logs/<subject_id>")
def automation_logs(subject_id: str):
    try:
        page = int(request.args.get("page", 1))
        limit = int(request.args.get("limit", DEFAULT_PAGE_SIZE))
    except ValueError:
        return _error(400, "INVALID_REQUEST", "page and limit must be integers")
    if page < 1 or limit < 1:
        return _error(400, "INVALID_REQUEST", "page and limit must be >= 1")
    result = _get_service().list_records(subject_id, page=page, page_size=limit)
    return jsonify(result.model_dump(mode="json", exclude={"data": {"__all__": {"encrypted_payload"}}}))


@app.get("/healthz")
def health():  # pragma: no cover - trivial endpoint
    return "ok", 200


if __name__ == "__main__":  # pragma: no cover - manual run helper
    app.run("0.0.0.0", 3000, threaded=True)
