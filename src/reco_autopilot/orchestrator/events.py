"""Decoding of build completion notifications."""

import base64
import binascii
import json
from typing import Any, Mapping, Optional

from reco_autopilot.models import BuildEvent
from reco_autopilot.utils.errors import MalformedEventError


def decode_build_event(envelope: Any) -> BuildEvent:
    """Decode a push-subscription envelope into a BuildEvent.

    The envelope carries ``message.data``: base64 of a JSON build payload
    with ``status`` and, for actionable builds, ``substitutions.COMMIT_SHA``
    and ``substitutions.REPO_NAME``.

    Args:
        envelope: Parsed JSON request body

    Returns:
        BuildEvent; correlation fields are None when the payload lacks them

    Raises:
        MalformedEventError: If the envelope or payload cannot be decoded
    """
    if not isinstance(envelope, Mapping):
        raise MalformedEventError("envelope is not a JSON object")

    message = envelope.get("message")
    if not isinstance(message, Mapping):
        raise MalformedEventError("missing 'message' object")

    data = message.get("data")
    if not isinstance(data, str) or not data:
        raise MalformedEventError("missing 'message.data'")

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEventError(f"'message.data' is not valid base64: {e}")

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedEventError(f"payload is not valid JSON: {e}")

    if not isinstance(payload, Mapping):
        raise MalformedEventError("payload is not a JSON object")

    substitutions = payload.get("substitutions")
    if not isinstance(substitutions, Mapping):
        substitutions = {}

    return BuildEvent(
        status=_text(payload.get("status")) or "",
        commit_id=_text(substitutions.get("COMMIT_SHA")),
        repository_name=_text(substitutions.get("REPO_NAME")),
        build_id=_text(payload.get("id")),
    )


def _text(value: Any) -> Optional[str]:
    """Non-empty strings pass through; anything else is treated as absent."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
