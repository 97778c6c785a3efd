"""Mapping between transaction errors and grpc status codes."""

from __future__ import annotations

from typing import Any

import grpc

from .barrier import BranchBarrier, barrier_from
from .consts import RESULT_FAILURE, RESULT_ONGOING
from .errors import FailureError, OngoingError
from .grpcmeta import trans_base_from_metadata


class GrpcStatusError(grpc.RpcError):
    """A grpc error with a status code and details."""

    def __init__(self, code: grpc.StatusCode, message: str) -> None:
        super().__init__(f"rpc error: code = {code.name} desc = {message}")
        self._code = code
        self._message = message

    def code(self) -> grpc.StatusCode:
        return self._code

    def details(self) -> str:
        return self._message


def dtm_error_to_grpc_error(res: Any) -> BaseException | None:
    """Translate a handler result into the grpc error to report, or None."""
    if isinstance(res, FailureError):
        return GrpcStatusError(grpc.StatusCode.ABORTED, RESULT_FAILURE)
    if isinstance(res, OngoingError):
        return GrpcStatusError(grpc.StatusCode.FAILED_PRECONDITION, RESULT_ONGOING)
    if isinstance(res, BaseException):
        return res
    return None


def grpc_error_to_dtm_error(err: BaseException | None) -> BaseException | None:
    """Translate a grpc error into a transaction error where the code has one."""
    code_fn = getattr(err, "code", None)
    if err is None or not callable(code_fn):
        return err
    code = code_fn()
    if code == grpc.StatusCode.ABORTED:
        details_fn = getattr(err, "details", None)
        details = details_fn() if callable(details_fn) else ""
        # older servers report ongoing under the aborted code
        if details == RESULT_ONGOING:
            return OngoingError()
        return FailureError()
    if code == grpc.StatusCode.FAILED_PRECONDITION:
        return OngoingError()
    return err


def barrier_from_grpc(metadata: Any) -> BranchBarrier:
    """Build a barrier from incoming grpc metadata; raise ValueError if incomplete."""
    tb = trans_base_from_metadata(metadata)
    return barrier_from(tb.trans_type, tb.gid, tb.branch_id, tb.op)