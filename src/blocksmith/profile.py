"""Build profile (TOML subset) encoder for blocksmith."""

import json
import re
from typing import Any, List, Mapping

from .constants import MAX_PROFILE_INT

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def encode_profile(data: Mapping[str, Any]) -> str:
    """
    Encode a mapping as TOML.

    Scalars and arrays of scalars become `key = value` lines, nested mappings
    become `[a.b]` tables and lists of mappings become `[[a.b]]` arrays of
    tables. None values are skipped.

    Args:
        data: Mapping to encode

    Returns:
        TOML text

    Raises:
        TypeError: If a value is not a scalar, list or mapping
    """
    lines: List[str] = []
    _write(lines, data, [])
    return "\n".join(lines)


def _write(lines: List[str], data: Mapping[str, Any], path: List[str]) -> None:
    deferred = []
    for key, value in data.items():
        if value is None:
            continue
        if _is_scalar(value):
            lines.append(f"{_encode_key(key)} = {_format_value(value)}")
        elif isinstance(value, (list, tuple)):
            if all(_is_scalar(x) for x in value):
                items = ",".join(_format_value(x) for x in value)
                lines.append(f"{_encode_key(key)} = [{items}]")
            else:
                deferred.append((key, value))
        elif isinstance(value, Mapping):
            deferred.append((key, value))
        else:
            raise TypeError(f'invalid type: "{key}" ({type(value).__name__})')

    # Tables must follow every plain key of the enclosing table
    for key, value in deferred:
        path.append(_encode_key(key))
        if isinstance(value, Mapping):
            lines.append(f"[{'.'.join(path)}]")
            _write(lines, value, path)
        else:
            header = f"[[{'.'.join(path)}]]"
            for item in value:
                if not isinstance(item, Mapping):
                    raise TypeError(f'invalid array item: "{key}"')
                lines.append(header)
                _write(lines, item, path)
        path.pop()


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (bool, int, float, str))


def _format_value(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool) and value > MAX_PROFILE_INT:
        return str(MAX_PROFILE_INT)
    return json.dumps(value)


def _encode_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else json.dumps(key)
