"""XA transactions over HTTP."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import requests

from .consts import OP_ACTION, OP_COMMIT, OP_ROLLBACK
from .transbase import TransBase
from .utils import DBConf, escape_get
from .xabase import xa_handle_global_trans, xa_handle_local_trans, xa_handle_phase2


class Xa(TransBase):
    """An XA global transaction or branch."""

    def __init__(self, gid: str = "", trans_type: str = "", dtm: str = "", branch_id: str = "") -> None:
        super().__init__(gid, trans_type, dtm, branch_id)
        self.phase2_url = ""

    def call_branch(self, body: Any, url: str) -> requests.Response | None:
        """Call an XA branch at ``url``."""
        branch_id = self.new_sub_branch_id()
        return self.request_branch("POST", body, branch_id, OP_ACTION, url)


def xa_from_query(qs: Mapping[str, Any]) -> Xa:
    """Build an Xa from request query values; raise ValueError if incomplete."""
    xa = Xa.from_query(qs)
    xa.op = escape_get(qs, "op")
    xa.phase2_url = escape_get(qs, "phase2_url")
    if not xa.gid or not xa.branch_id or not xa.op:
        raise ValueError(
            f"bad xa info: gid: {xa.gid} branchid: {xa.branch_id} "
            f"op: {xa.op} phase2_url: {xa.phase2_url}"
        )
    return xa


def xa_local_transaction(
    qs: Mapping[str, Any], db_conf: DBConf, xa_func: Callable[[Any, Xa], Any]
) -> None:
    """Handle a branch request: phase 2 commit/rollback, or run ``xa_func`` in a new XA branch."""
    xa = xa_from_query(qs)
    if xa.op in (OP_COMMIT, OP_ROLLBACK):
        xa_handle_phase2(xa.gid, db_conf, xa.branch_id, xa.op)
        return

    def run(db: Any) -> None:
        xa_func(db, xa)
        xa.register_branch({"url": xa.phase2_url, "branch_id": xa.branch_id}, "registerBranch")

    xa_handle_local_trans(xa, db_conf, run)


def xa_global_transaction(
    server: str,
    gid: str,
    xa_func: Callable[[Xa], Any],
    custom: Callable[[Xa], Any] | None = None,
) -> None:
    """Prepare an XA transaction, run ``xa_func``, then submit or abort."""
    xa = Xa(gid, "xa", server, "")
    if custom is not None:
        custom(xa)
    xa_handle_global_trans(xa, lambda action: xa.call_dtm(xa, action), lambda: xa_func(xa))