"""Structured surface: one JSON envelope per verb.

``dispatch`` never raises for tracker or storage failures; it wraps results as
``{"ok": true, "data": ..., "warnings": [...]}`` and failures as
``{"ok": false, "error": {"code", "message", "details"}}``. ``serve_stream``
runs the same dispatcher over line-delimited JSON.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import IO, Any

from sqlalchemy.exc import SQLAlchemyError

from dagtasks.tracker.errors import InvalidInputError, TrackerError
from dagtasks.tracker.models import OrderConflict, TaskStatus
from dagtasks.tracker.services import CreateTask, EditTask, TrackerService

logger = logging.getLogger(__name__)

STORAGE_ERROR_CODE = "storage_error"

Params = Mapping[str, Any]
Handler = Callable[[TrackerService, Params], object]


def dispatch(service: TrackerService, verb: str, params: Params | None = None) -> dict[str, Any]:
    """Run one verb and wrap the outcome in an envelope."""

    handler = VERBS.get(verb)
    if handler is None:
        return _error_envelope(InvalidInputError(f"Unknown verb: {verb!r}"))
    try:
        result = handler(service, params or {})
    except TrackerError as error:
        return _error_envelope(error)
    except (SQLAlchemyError, OSError) as error:
        logger.exception("Storage failure while handling verb=%s", verb)
        return {
            "ok": False,
            "error": {"code": STORAGE_ERROR_CODE, "message": str(error), "details": {}},
        }

    payload = to_payload(result)
    warnings: list[Any] = []
    if isinstance(payload, dict) and "warnings" in payload:
        warnings = payload.pop("warnings")
    return {"ok": True, "data": payload, "warnings": warnings}


def serve_stream(service: TrackerService, input_stream: IO[str], output_stream: IO[str]) -> int:
    """Answer one JSON request per input line until EOF; returns requests handled.

    Requests look like ``{"id": 1, "verb": "next", "params": {}}``. The
    response echoes ``id`` next to the envelope.
    """

    handled = 0
    for raw_line in input_stream:
        line = raw_line.strip()
        if not line:
            continue
        request_id: Any = None
        try:
            request = json.loads(line)
            if not isinstance(request, dict):
                raise InvalidInputError("Request must be a JSON object")
            request_id = request.get("id")
            params = request.get("params") or {}
            if not isinstance(params, dict):
                raise InvalidInputError("params must be a JSON object")
            envelope = dispatch(service, str(request.get("verb", "")), params)
        except json.JSONDecodeError as error:
            envelope = _error_envelope(InvalidInputError(f"Malformed JSON request: {error.msg}"))
        except InvalidInputError as error:
            envelope = _error_envelope(error)
        output_stream.write(json.dumps({"id": request_id, **envelope}) + "\n")
        output_stream.flush()
        handled += 1
    return handled


def to_payload(value: object) -> Any:
    """Convert views to JSON-compatible values."""

    if isinstance(value, OrderConflict):
        return {
            "code": value.code,
            "message": value.message,
            "task_id": value.task_id,
            "task_order": value.task_order,
            "depends_on": value.depends_on,
            "depends_on_order": value.depends_on_order,
        }
    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_payload(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): to_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    return value


def _error_envelope(error: TrackerError) -> dict[str, Any]:
    return {
        "ok": False,
        "error": {"code": error.code, "message": error.message, "details": error.details()},
    }


def _int_param(params: Params, name: str, *, required: bool = True) -> int | None:
    raw = params.get(name)
    if raw is None:
        if required:
            raise InvalidInputError(f"Missing required parameter: {name}")
        return None
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise InvalidInputError(f"Parameter {name} must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as error:
        raise InvalidInputError(f"Parameter {name} must be an integer") from error


def _task_id(params: Params, name: str = "id") -> int:
    value = _int_param(params, name)
    if value is None:
        raise InvalidInputError(f"Missing required parameter: {name}")
    return value


def _str_param(params: Params, name: str, *, required: bool = True) -> str | None:
    raw = params.get(name)
    if raw is None:
        if required:
            raise InvalidInputError(f"Missing required parameter: {name}")
        return None
    if not isinstance(raw, str):
        raise InvalidInputError(f"Parameter {name} must be a string")
    return raw


def _create(service: TrackerService, params: Params) -> object:
    return service.create_task(
        CreateTask(
            title=_str_param(params, "title") or "",
            description=_str_param(params, "description", required=False),
            dod=_str_param(params, "dod", required=False),
            after=_int_param(params, "after", required=False),
            before=_int_param(params, "before", required=False),
        ),
    )


def _edit(service: TrackerService, params: Params) -> object:
    return service.edit_task(
        EditTask(
            task_id=_task_id(params),
            title=_str_param(params, "title", required=False),
            description=_str_param(params, "description", required=False),
            dod=_str_param(params, "dod", required=False),
        ),
    )


def _list(service: TrackerService, params: Params) -> object:
    raw_status = _str_param(params, "status", required=False)
    return service.list_tasks(
        include_all=bool(params.get("all", False)),
        status=TaskStatus.parse(raw_status) if raw_status is not None else None,
    )


def _log_artifact(service: TrackerService, params: Params) -> object:
    return service.log_artifact(
        _str_param(params, "name") or "",
        _str_param(params, "file_path") or "",
    )


VERBS: dict[str, Handler] = {
    "create": _create,
    "edit": _edit,
    "show": lambda service, params: service.show_task(_task_id(params)),
    "list": _list,
    "current": lambda service, _params: service.current_task(),
    "set_target": lambda service, params: service.set_target(_task_id(params)),
    "get_target": lambda service, _params: service.get_target(),
    "next": lambda service, _params: service.next_task(),
    "start": lambda service, params: service.start_task(_task_id(params)),
    "stop": lambda service, _params: service.stop_task(),
    "done": lambda service, _params: service.complete_task(),
    "block": lambda service, params: service.block_task(_task_id(params)),
    "unblock": lambda service, params: service.unblock_task(_task_id(params)),
    "add_dependency": lambda service, params: service.add_dependency(
        _task_id(params),
        _task_id(params, "depends_on"),
    ),
    "remove_dependency": lambda service, params: service.remove_dependency(
        _task_id(params),
        _task_id(params, "depends_on"),
    ),
    "log_artifact": _log_artifact,
    "get_artifacts": lambda service, params: service.list_artifacts(
        _int_param(params, "task_id", required=False),
    ),
    "reorder": lambda service, params: service.reorder_task(
        _task_id(params),
        after=_int_param(params, "after", required=False),
        before=_int_param(params, "before", required=False),
    ),
    "reindex": lambda service, _params: service.reindex(),
}
