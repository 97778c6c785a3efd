"""Client helpers: gid generation and result translation."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

import requests

from .consts import RESULT_FAILURE, RESULT_ONGOING
from .errors import DtmError, FailureError, OngoingError
from .transbase import get_http_client
from .utils import may_replace_localhost


def must_gen_gid(server: str) -> str:
    """Ask the server for a new gid; raise DtmError if none is returned."""
    resp = None
    try:
        resp = get_http_client().get(may_replace_localhost(server + "/newGid"))
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        text = resp.text if resp is not None else ""
        raise DtmError(f"newGid error: {exc}, resp: {text}") from exc
    gid = data.get("gid") if isinstance(data, dict) else None
    if not gid:
        raise DtmError(f"newGid error: None, resp: {resp.text}")
    return gid


def string_to_dtm_error(value: str) -> DtmError | None:
    """Translate a result string into the matching error, or None."""
    if value == RESULT_FAILURE:
        return FailureError()
    if value == RESULT_ONGOING:
        return OngoingError()
    return None


def result_to_http_json(result: Any) -> tuple[int, Any]:
    """Return the HTTP status and JSON body for a handler result or error."""
    if not isinstance(result, BaseException):
        return HTTPStatus.OK.value, result
    body = {"error": str(result)}
    if isinstance(result, FailureError):
        return HTTPStatus.CONFLICT.value, body
    if isinstance(result, OngoingError):
        return HTTPStatus.TOO_EARLY.value, body
    return HTTPStatus.INTERNAL_SERVER_ERROR.value, body