"""
Response Shapes
Version: 2.0

Normalization of the untyped upstream bodies.

The n8n webhook and the Apps Scripts return lists in several shapes:
    {"name": [...]}        [{"name": [...]}]        [...]
    {"ok": true, "rows": [...]}                     [...]
Shape detection happens here, once, so controllers only see typed values.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

import httpx

from services.errors import MalformedResponseError, UpstreamRejectedError

logger = logging.getLogger(__name__)

INVALID_JSON_MESSAGE = "Invalid response format"


@dataclass(frozen=True)
class NameList:
    names: Tuple[str, ...]


@dataclass(frozen=True)
class EmptyRoster:
    reason: str = ""


RosterResponse = Union[NameList, EmptyRoster]


def is_json_response(response: httpx.Response) -> bool:
    return "application/json" in response.headers.get("content-type", "").lower()


def parse_body(response: httpx.Response, invalid_json_message: str = INVALID_JSON_MESSAGE) -> Any:
    """
    JSON body when content-type says JSON, else {"message": text}.

    Invalid JSON under a JSON content-type becomes {"message": invalid_json_message}.
    """
    if is_json_response(response):
        try:
            return response.json()
        except ValueError:
            logger.warning(f"JSON parsing failed (status={response.status_code})")
            return {"message": invalid_json_message}
    return {"message": response.text}


def error_message(body: Any, default: str) -> str:
    """Pull a human message out of an error body."""
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return default


def _coerce_names(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise MalformedResponseError(f"Expected a list of names, got {type(value).__name__}")
    names = []
    for entry in value:
        if isinstance(entry, str):
            if entry.strip():
                names.append(entry)
        else:
            raise MalformedResponseError(f"Roster entry is not a string: {entry!r}")
    return names


def extract_names(response: Any) -> List[str]:
    """
    Names from {"name": [...]}, [{"name": [...]}] or a bare list.

    Raises MalformedResponseError for anything else.
    """
    if isinstance(response, dict):
        if "name" not in response:
            raise MalformedResponseError("Response has no 'name' field")
        return _coerce_names(response["name"])

    if isinstance(response, list):
        if not response:
            return []
        first = response[0]
        if isinstance(first, dict):
            if "name" not in first:
                raise MalformedResponseError("First element has no 'name' field")
            return _coerce_names(first["name"])
        return _coerce_names(response)

    raise MalformedResponseError(f"Unexpected roster response type: {type(response).__name__}")


def normalize_roster(response: Any) -> RosterResponse:
    """Three-way shape detection; malformed input degrades to EmptyRoster."""
    try:
        names = extract_names(response)
    except MalformedResponseError as e:
        logger.warning(f"Malformed roster response: {e.message}")
        return EmptyRoster(reason=e.message)

    if not names:
        return EmptyRoster(reason="empty")
    return NameList(names=tuple(names))


def roster_names(roster: RosterResponse) -> List[str]:
    if isinstance(roster, NameList):
        return list(roster.names)
    return []


def normalize_rows(data: Any) -> List[Dict[str, Any]]:
    """
    Rows from a bare list or {"ok": true, "rows": [...]}.

    ok=false and a missing rows array are reported, not swallowed.
    Non-dict entries inside the list are dropped with a warning.
    """
    if isinstance(data, list):
        rows = data
    elif isinstance(data, dict):
        if data.get("ok") is not True:
            raise UpstreamRejectedError(error_message(data, "API returned ok=false"))
        rows = data.get("rows")
        if not isinstance(rows, list):
            raise UpstreamRejectedError("API response has no rows")
    else:
        raise UpstreamRejectedError("Unexpected bookings response")

    clean = [row for row in rows if isinstance(row, dict)]
    if len(clean) != len(rows):
        logger.warning(f"Dropped {len(rows) - len(clean)} malformed rows")
    return clean


def normalize_named_list(data: Any, what: str) -> List[str]:
    """{"ok": true, "names": [...]} lists served by the lookup scripts."""
    if not isinstance(data, dict) or not data.get("ok"):
        raise UpstreamRejectedError(error_message(data, f"Failed to fetch {what} list"))
    names = data.get("names") or []
    if not isinstance(names, list):
        logger.warning(f"{what} list is not an array")
        return []
    return [str(n) for n in names if str(n).strip()]
