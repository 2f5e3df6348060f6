"""
Input validation for the admin panel API.

Requests are checked here before anything touches the database and turned
into small typed structures the handlers pass on to the connection manager.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from config import get_settings
from api.errors import ValidationError


OBJECT_ID_RE = re.compile(r'[a-fA-F0-9]{24}')

CONNECT_FIELDS = ('uri',)
UPDATE_FIELDS = ('guildID', 'url', 'port')


@dataclass(frozen=True)
class ConnectRequest:
    uri: str


@dataclass(frozen=True)
class DashboardUpdate:
    guild_id: str
    url: str
    port: int

    def to_document(self) -> Dict[str, Any]:
        """Fields in the shape they are stored in the dashboards collection."""
        return {
            'guildID': self.guild_id,
            'url': self.url,
            'port': self.port
        }


def _uri_pattern(schemes: Iterable[str]) -> re.Pattern:
    alternatives = '|'.join(re.escape(s) for s in schemes)
    return re.compile(rf'(?:{alternatives})://.+')


def is_valid_mongo_uri(uri: Any, max_length: Optional[int] = None) -> bool:
    """Check connection-string shape: allowed scheme, non-empty remainder, bounded length."""
    validation = get_settings().validation
    if max_length is None:
        max_length = validation.uri_max_length
    return (
        isinstance(uri, str)
        and len(uri) <= max_length
        and _uri_pattern(validation.uri_schemes).fullmatch(uri) is not None
    )


def is_valid_object_id(value: Any) -> bool:
    """True for exactly 24 hexadecimal characters, either case."""
    return isinstance(value, str) and OBJECT_ID_RE.fullmatch(value) is not None


def require_json_object(body: Any, allowed_fields: Iterable[str]) -> Dict[str, Any]:
    """Reject bodies that are not JSON objects or that carry unexpected keys."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = sorted(set(body) - set(allowed_fields))
    if unknown:
        raise ValidationError(f"Unexpected field(s): {', '.join(unknown)}")
    return body


def validate_uri(uri: Any) -> str:
    if uri is None or uri == '':
        raise ValidationError("MongoDB URI is required")
    if not is_valid_mongo_uri(uri):
        raise ValidationError(
            "Invalid MongoDB URI format. Must start with "
            + " or ".join(f"{s}://" for s in get_settings().validation.uri_schemes)
        )
    return uri


def validate_object_id(value: Any) -> str:
    if not is_valid_object_id(value):
        raise ValidationError("Invalid dashboard ID format")
    return value


def parse_port(value: Any) -> int:
    """Coerce an integer, an integral float or a digit string into a port number."""
    validation = get_settings().validation
    port_min, port_max = validation.port_min, validation.port_max
    message = f"port must be a valid port number ({port_min}-{port_max})"

    # bool is an int subclass
    if isinstance(value, bool):
        raise ValidationError(message)

    if isinstance(value, int):
        port = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(message)
        port = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError(message)
        port = int(text)
    else:
        raise ValidationError(message)

    if port < port_min or port > port_max:
        raise ValidationError(message)
    return port


def _require_string(body: Dict[str, Any], field: str) -> str:
    value = body.get(field)
    if value is None or value == '':
        raise ValidationError(f"{field} is required")
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    if not value.strip():
        raise ValidationError(f"{field} must not be blank")
    return value


def parse_connect_request(body: Any) -> ConnectRequest:
    body = require_json_object(body, CONNECT_FIELDS)
    return ConnectRequest(uri=validate_uri(body.get('uri')))


def parse_dashboard_update(body: Any) -> DashboardUpdate:
    """Validate an update payload, stopping at the first bad field."""
    body = require_json_object(body, UPDATE_FIELDS)

    guild_id = _require_string(body, 'guildID')
    url = _require_string(body, 'url')

    port = body.get('port')
    if port is None or port == '':
        raise ValidationError("port is required")

    return DashboardUpdate(guild_id=guild_id, url=url, port=parse_port(port))
