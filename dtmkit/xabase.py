"""Shared XA handling for local and global transactions."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .consts import OP_ACTION, OP_ROLLBACK, XA_BARRIER1
from .dbspecial import get_db_special
from .transbase import TransBase
from .utils import DBConf, commit_or_rollback, db_exec, insert_barrier, pooled_db, xa_db

_IGNORED_PHASE2 = ("XAER_NOTA", "does not exist")


def xa_handle_phase2(gid: str, db_conf: DBConf, branch_id: str, op: str) -> None:
    """Commit or roll back a prepared XA branch."""
    db = pooled_db(db_conf)
    xa_id = f"{gid}-{branch_id}"
    try:
        db_exec(db, get_db_special().xa_sql(op, xa_id))
    except Exception as exc:
        if not any(marker in str(exc) for marker in _IGNORED_PHASE2):
            raise
    if op == OP_ROLLBACK:
        # a row inserted after prepare blocks a late prepare of the same branch
        insert_barrier(db, "xa", gid, branch_id, OP_ACTION, XA_BARRIER1, op)


def xa_handle_local_trans(xa: TransBase, db_conf: DBConf, cb: Callable[[Any], Any]) -> None:
    """Run ``cb`` inside an XA branch, preparing it when ``cb`` succeeds."""
    xa_branch = f"{xa.gid}-{xa.branch_id}"
    db = xa_db(db_conf)
    special = get_db_special()
    try:
        with commit_or_rollback(lambda: db_exec(db, special.xa_sql("prepare", xa_branch)), lambda: None):
            db_exec(db, special.xa_sql("start", xa_branch))
            try:
                insert_barrier(db, xa.trans_type, xa.gid, xa.branch_id, OP_ACTION, XA_BARRIER1, OP_ACTION)
                cb(db)
            finally:
                try:
                    db_exec(db, special.xa_sql("end", xa_branch))
                except Exception:
                    pass
    finally:
        db.close()


def xa_handle_global_trans(
    xa: TransBase, call_dtm: Callable[[str], Any], call_busi: Callable[[], Any]
) -> None:
    """Prepare the global transaction, run ``call_busi``, then submit or abort."""
    call_dtm("prepare")
    with commit_or_rollback(lambda: call_dtm("submit"), lambda: call_dtm("abort")):
        call_busi()