from __future__ import annotations

import re
import secrets


_ABSENT_MARKERS = {'', 'null', 'undefined', 'none'}
_OBJECT_ID_RE = re.compile(r'^[0-9a-f]{24}$')


def parse_optional_id(raw) -> str | None:
    """Normalize an identifier input, mapping every "no value" spelling to None.

    Legacy documents stored missing references as None, '', whitespace, or the
    literal strings 'null' / 'undefined'.
    """
    if raw is None:
        return None
    value = str(raw).strip()
    if value.lower() in _ABSENT_MARKERS:
        return None
    return value


def parse_id_list(raw) -> list[str]:
    """Split a comma separated string or iterable into distinct ids, keeping order."""
    if raw is None:
        return []
    items = raw.split(',') if isinstance(raw, str) else list(raw)
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        value = parse_optional_id(item)
        if value is None or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def new_object_id() -> str:
    return secrets.token_hex(12)


def is_object_id(value) -> bool:
    return isinstance(value, str) and bool(_OBJECT_ID_RE.match(value.lower()))
