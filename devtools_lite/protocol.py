"""Wire codec for CDP frames.

Requests go out as ``{"id", "method", "params"}`` JSON text. Inbound text is
decoded into either a reply (``id`` plus ``result``/``error``) or an event
(``method`` plus optional ``params``).
"""

import json
from typing import Any, Dict, Mapping, Optional

from .exceptions import CDPDecodeError, InvalidCommandError

# Chrome reports these when the debugging target no longer exists.
INSPECTOR_DETACHED = "Inspector.detached"
TERMINAL_DETACH_REASONS = frozenset({"target_closed", "Render process gone."})

PAGE_LOAD_EVENT = "Page.loadEventFired"

# WebSocket close codes treated as an orderly shutdown
NORMAL_CLOSE_CODES = frozenset({1000, 1001})


def encode_request(msg_id: int, method: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Serialize a CDP request frame.

    Args:
        msg_id: Correlation identifier
        method: "<Domain>.<command>" method name
        params: String-keyed mapping of JSON-compatible values

    Returns:
        JSON text ready to be written to the socket

    Raises:
        InvalidCommandError: If method or params cannot form a valid frame
    """
    if not isinstance(method, str) or "." not in method.strip("."):
        raise InvalidCommandError(
            f"Invalid CDP method name: {method!r}",
            method=method if isinstance(method, str) else None,
            details={"expected": "<Domain>.<command>"},
        )

    params = dict(params or {})
    bad_keys = [k for k in params if not isinstance(k, str)]
    if bad_keys:
        raise InvalidCommandError(
            "CDP params keys must be strings",
            method=method,
            details={"keys": bad_keys},
        )

    try:
        return json.dumps({"id": msg_id, "method": method, "params": params})
    except (TypeError, ValueError) as e:
        raise InvalidCommandError(
            f"CDP params are not JSON-encodable: {e}", method=method
        ) from e


def decode_frame(raw: Any) -> Dict[str, Any]:
    """Decode one inbound frame.

    Raises:
        CDPDecodeError: If the text is not JSON or not a JSON object
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CDPDecodeError(f"Frame is not UTF-8: {e}", raw=raw) from e

    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise CDPDecodeError(f"Malformed CDP message: {e}", raw=raw) from e

    if not isinstance(data, dict):
        raise CDPDecodeError(
            f"CDP message is not an object: {type(data).__name__}", raw=raw
        )
    return data


def is_reply(frame: Mapping[str, Any]) -> bool:
    """Return True for frames answering a request (carry an "id")."""
    return "id" in frame


def event_params(frame: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the frame's params, or an empty dict when absent or not an object."""
    params = frame.get("params")
    return params if isinstance(params, dict) else {}


def detach_reason(frame: Mapping[str, Any]) -> Optional[str]:
    """Return the Inspector.detached reason, or None for any other frame."""
    if frame.get("method") != INSPECTOR_DETACHED:
        return None
    reason = event_params(frame).get("reason")
    return reason if isinstance(reason, str) else "unknown"
