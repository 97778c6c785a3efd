"""Common state of a global transaction and its calls to the server and branches."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests

from .consts import JRPC, RESULT_FAILURE
from .errors import DtmError, resp_as_error
from .logger import debugf
from .utils import escape_get, may_replace_localhost, settings, to_json

_session = requests.Session()
_request_timeout: float | None = None

_MAX_SUB_BRANCH = 99
_MAX_BRANCH_ID_LEN = 20


def get_http_client() -> requests.Session:
    """Return the shared HTTP session used for all requests."""
    return _session


@dataclass
class BranchIDGen:
    """Generates sub branch ids below a parent branch id."""

    branch_id: str = ""
    sub_branch_id: int = 0

    def new_sub_branch_id(self) -> str:
        """Allocate the next sub branch id; raise ValueError past the limits."""
        if self.sub_branch_id >= _MAX_SUB_BRANCH:
            raise ValueError("branch id is larger than 99")
        if len(self.branch_id) >= _MAX_BRANCH_ID_LEN:
            raise ValueError("total branch id is longer than 20")
        self.sub_branch_id += 1
        return self.current_sub_branch_id()

    def current_sub_branch_id(self) -> str:
        """Return the most recently allocated sub branch id."""
        return f"{self.branch_id}{self.sub_branch_id:02d}"


@dataclass
class TransOptions:
    """Options of a global transaction."""

    wait_result: bool = False
    timeout_to_fail: int = 0
    request_timeout: int = 0
    retry_interval: int = 0
    passthrough_headers: list[str] = field(default_factory=list)
    branch_headers: dict[str, str] = field(default_factory=dict)
    concurrent: bool = False


class TransBase(TransOptions, BranchIDGen):
    """Base of every transaction type."""

    def __init__(self, gid: str = "", trans_type: str = "", dtm: str = "", branch_id: str = "") -> None:
        TransOptions.__init__(self, passthrough_headers=list(settings.passthrough_headers))
        BranchIDGen.__init__(self, branch_id=branch_id)
        self.gid = gid
        self.trans_type = trans_type
        self.dtm = dtm
        self.custom_data = ""
        self.steps: list[dict[str, str]] = []
        self.payloads: list[str] = []
        self.bin_payloads: list[bytes] = []
        self.op = ""
        self.query_prepared = ""
        self.protocol = ""

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(gid={self.gid!r}, trans_type={self.trans_type!r}, "
            f"dtm={self.dtm!r}, branch_id={self.branch_id!r}, op={self.op!r})"
        )

    @classmethod
    def from_query(cls, qs: Mapping[str, Any]) -> TransBase:
        """Build from request query values."""
        return cls(
            escape_get(qs, "gid"),
            escape_get(qs, "trans_type"),
            escape_get(qs, "dtm"),
            escape_get(qs, "branch_id"),
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON document sent to the server."""
        data: dict[str, Any] = {"gid": self.gid, "trans_type": self.trans_type}
        if self.custom_data:
            data["custom_data"] = self.custom_data
        optional = {
            "wait_result": self.wait_result,
            "timeout_to_fail": self.timeout_to_fail,
            "request_timeout": self.request_timeout,
            "retry_interval": self.retry_interval,
            "passthrough_headers": self.passthrough_headers,
            "branch_headers": self.branch_headers,
        }
        data.update({k: v for k, v in optional.items() if v})
        data["concurrent"] = self.concurrent
        if self.steps:
            data["steps"] = self.steps
        if self.payloads:
            data["payloads"] = self.payloads
        if self.query_prepared:
            data["query_prepared"] = self.query_prepared
        data["protocol"] = self.protocol
        return data

    def call_dtm(self, body: Any, operation: str) -> None:
        """Send ``operation`` to the server; raise DtmError on a bad reply."""
        global _request_timeout
        if self.request_timeout:
            _request_timeout = self.request_timeout
        if isinstance(body, TransBase):
            body = body.to_payload()
        if self.protocol == JRPC:
            envelope = {"jsonrpc": "2.0", "id": "no-use", "method": operation, "params": body}
            resp = _post(self.dtm, envelope)
            try:
                result = resp.json()
            except ValueError:
                result = None
            if resp.status_code != 200 or not isinstance(result, dict) or result.get("error") is not None:
                raise DtmError(resp.text)
            return
        resp = _post(f"{self.dtm}/{operation}", body)
        if resp.status_code != 200 or RESULT_FAILURE in resp.text:
            raise DtmError(resp.text)

    def register_branch(self, added: Mapping[str, str], operation: str) -> None:
        """Register a branch with the server."""
        self.call_dtm({"gid": self.gid, "trans_type": self.trans_type, **added}, operation)

    def request_branch(
        self, method: str, body: Any, branch_id: str, op: str, url: str
    ) -> requests.Response | None:
        """Call a branch; return its response, or None when ``url`` is empty."""
        if not url:
            return None
        query = {
            "dtm": self.dtm,
            "gid": self.gid,
            "branch_id": branch_id,
            "trans_type": self.trans_type,
            "op": op,
        }
        if self.trans_type == "xa":
            query["phase2_url"] = url
        headers = dict(self.branch_headers)
        data = None
        if body is not None:
            data = to_json(body).encode("utf-8")
            headers.setdefault("Content-Type", "application/json")
        target = may_replace_localhost(url)
        debugf("requesting: %s %s", method, target)
        resp = _session.request(
            method, target, params=query, data=data, headers=headers, timeout=_request_timeout
        )
        debugf("requested: %s %s %s", method, target, resp.text)
        err = resp_as_error(resp.status_code, resp.text)
        if err is not None:
            raise err
        return resp


def _post(url: str, body: Any) -> requests.Response:
    target = may_replace_localhost(url)
    payload = to_json(body)
    debugf("requesting: POST %s %s", target, payload)
    resp = _session.post(
        target,
        data=payload.encode("utf-8"),
        headers={"Content-Type": "application/json"},
        timeout=_request_timeout,
    )
    debugf("requested: POST %s %s", target, resp.text)
    return resp