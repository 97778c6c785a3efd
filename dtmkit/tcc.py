"""TCC (try-confirm-cancel) transactions."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import requests

from .consts import OP_CANCEL, OP_CONFIRM, OP_TRY
from .transbase import TransBase
from .utils import commit_or_rollback, to_json


class Tcc(TransBase):
    """A TCC global transaction."""

    def call_branch(
        self, body: Any, try_url: str, confirm_url: str, cancel_url: str
    ) -> requests.Response | None:
        """Register a branch with its confirm and cancel URLs, then call its try URL."""
        branch_id = self.new_sub_branch_id()
        self.register_branch(
            {
                "data": to_json(body),
                "branch_id": branch_id,
                OP_CONFIRM: confirm_url,
                OP_CANCEL: cancel_url,
            },
            "registerBranch",
        )
        return self.request_branch("POST", body, branch_id, OP_TRY, try_url)


def tcc_global_transaction(
    dtm: str,
    gid: str,
    tcc_func: Callable[[Tcc], Any],
    custom: Callable[[Tcc], Any] | None = None,
) -> None:
    """Prepare a TCC transaction, run ``tcc_func``, then submit or abort."""
    tcc = Tcc(gid, "tcc", dtm, "")
    if custom is not None:
        custom(tcc)
    tcc.call_dtm(tcc, "prepare")
    with commit_or_rollback(lambda: tcc.call_dtm(tcc, "submit"), lambda: tcc.call_dtm(tcc, "abort")):
        tcc_func(tcc)


def tcc_from_query(qs: Mapping[str, Any]) -> Tcc:
    """Build a Tcc from request query values; raise ValueError if incomplete."""
    tcc = Tcc.from_query(qs)
    if not tcc.dtm or not tcc.gid:
        raise ValueError(
            f"bad tcc info. dtm: {tcc.dtm}, gid: {tcc.gid} parentID: {tcc.branch_id}"
        )
    return tcc