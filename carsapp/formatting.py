"""Pretty-printing of ledger result payloads."""

import json

from .errors import MalformedPayloadError

INDENT = 1


def format_json(data: bytes) -> str:
    """
    Re-indent a JSON payload with a single-space indent unit.

    Key order and values are preserved; formatting an already formatted
    payload returns it unchanged.

    Raises:
        MalformedPayloadError: If the payload is not valid UTF-8 JSON
    """
    try:
        obj = json.loads(data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"failed to parse JSON: {e}") from e
    return json.dumps(obj, indent=INDENT, ensure_ascii=False)
