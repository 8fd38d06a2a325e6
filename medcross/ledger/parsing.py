"""Field extraction helpers shared by the chain adapters. Every failure is a MalformedEventError."""

import json
from datetime import datetime, timezone
from typing import Any, FrozenSet, Mapping

from medcross.domain.exceptions import DomainValidationError, MalformedEventError
from medcross.domain.models.record import DataType, parse_data_type


def require(source: Mapping[str, Any], key: str, raw: Mapping[str, Any]) -> Any:
    value = source.get(key) if isinstance(source, Mapping) else None
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MalformedEventError(f"Missing required field '{key}'", raw=dict(raw))
    return value


def require_str(source: Mapping[str, Any], key: str, raw: Mapping[str, Any]) -> str:
    value = require(source, key, raw)
    if not isinstance(value, str):
        raise MalformedEventError(f"Field '{key}' must be a string", raw=dict(raw))
    return value.strip()


def require_mapping(source: Mapping[str, Any], key: str, raw: Mapping[str, Any]) -> Mapping[str, Any]:
    value = require(source, key, raw)
    if not isinstance(value, Mapping):
        raise MalformedEventError(f"Field '{key}' must be an object", raw=dict(raw))
    return value


def parse_int(value: Any, key: str, raw: Mapping[str, Any]) -> int:
    """Accept ints, decimal strings and 0x-prefixed hex strings. Booleans are rejected."""
    if isinstance(value, bool):
        raise MalformedEventError(f"Field '{key}' must be an integer", raw=dict(raw))
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip().lower()
        try:
            result = int(text, 16) if text.startswith("0x") else int(text)
        except ValueError:
            raise MalformedEventError(f"Field '{key}' is not an integer: {value!r}", raw=dict(raw)) from None
    else:
        raise MalformedEventError(f"Field '{key}' must be an integer", raw=dict(raw))
    if result < 0:
        raise MalformedEventError(f"Field '{key}' must be non-negative", raw=dict(raw))
    return result


def parse_unix_timestamp(value: Any, key: str, raw: Mapping[str, Any]) -> datetime:
    return datetime.fromtimestamp(parse_int(value, key, raw), tz=timezone.utc)


def parse_iso_timestamp(value: Any, key: str, raw: Mapping[str, Any]) -> datetime:
    """RFC 3339 string (Z suffix allowed) or unix seconds. Naive values are taken as UTC."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if not isinstance(value, str):
        raise MalformedEventError(f"Field '{key}' must be a timestamp", raw=dict(raw))
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise MalformedEventError(f"Field '{key}' is not a timestamp: {value!r}", raw=dict(raw)) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_tags(value: Any, raw: Mapping[str, Any]) -> FrozenSet[str]:
    """Tags as a list of strings or a comma-separated string. Blank entries are dropped."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise MalformedEventError("Field 'tags' must be a list or string", raw=dict(raw))
    return frozenset(str(item).strip() for item in items if str(item).strip())


def parse_data_type_field(value: Any, raw: Mapping[str, Any]) -> DataType:
    try:
        return parse_data_type(str(value))
    except DomainValidationError as e:
        raise MalformedEventError(e.message, raw=dict(raw)) from e


def decode_payload(value: Any, raw: Mapping[str, Any]) -> Mapping[str, Any]:
    """Chaincode payloads arrive as bytes, JSON text or an already-decoded object."""
    if isinstance(value, Mapping):
        return value
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedEventError("Payload is not UTF-8", raw=dict(raw)) from None
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            raise MalformedEventError("Payload is not valid JSON", raw=dict(raw)) from None
        if isinstance(decoded, Mapping):
            return decoded
    raise MalformedEventError("Payload must be a JSON object", raw=dict(raw))
