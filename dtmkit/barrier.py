"""Sub-transaction barrier guarding branches against repeats, hangs and null compensation."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .consts import (
    MSG_DO_BARRIER1,
    MSG_DO_BRANCH0,
    MSG_DO_OP,
    OP_ACTION,
    OP_CANCEL,
    OP_COMPENSATE,
    OP_ROLLBACK,
    OP_TRY,
    RESULT_FAILURE,
)
from .errors import DuplicatedError, FailureError
from .logger import debugf
from .utils import _adapt_sql, _paramstyle, commit_or_rollback, escape_get, insert_barrier, settings

_ORIGIN_OPS = {OP_CANCEL: OP_TRY, OP_COMPENSATE: OP_ACTION}

_REDIS_CHECK_ADJUST = """ -- RedisCheckAdjustAmount
local v = redis.call('GET', KEYS[1])
local e1 = redis.call('GET', KEYS[2])

if v == false or v + ARGV[1] < 0 then
	return 'FAILURE'
end

if e1 ~= false then
	return 'DUPLICATE'
end

redis.call('SET', KEYS[2], 'op', 'EX', ARGV[3])

if ARGV[2] ~= '' then
	local e2 = redis.call('GET', KEYS[3])
	if e2 == false then
		redis.call('SET', KEYS[3], 'rollback', 'EX', ARGV[3])
		return
	end
end
redis.call('INCRBY', KEYS[1], ARGV[1])
"""

_REDIS_QUERY_PREPARED = """ -- RedisQueryPrepared
local v = redis.call('GET', KEYS[1])
if v == false then
	redis.call('SET', KEYS[1], 'rollback', 'EX', ARGV[1])
	v = 'rollback'
end
if v == 'rollback' then
	return 'FAILURE'
end
"""


def _text(value: Any) -> Any:
    return value.decode() if isinstance(value, bytes) else value


@dataclass
class BranchBarrier:
    """Identity of a branch operation guarded by the barrier."""

    trans_type: str
    gid: str
    branch_id: str
    op: str
    barrier_id: int = 0

    def __str__(self) -> str:
        return f"transInfo: {self.trans_type} {self.gid} {self.branch_id} {self.op}"

    def _new_barrier_id(self) -> str:
        self.barrier_id += 1
        return f"{self.barrier_id:02d}"

    @property
    def _origin_op(self) -> str:
        return _ORIGIN_OPS.get(self.op, "")

    def _skip(self, origin_affected: int, current_affected: int) -> bool:
        null_compensate = self.op in (OP_CANCEL, OP_COMPENSATE) and origin_affected > 0
        return null_compensate or current_affected == 0

    def call(self, tx: Any, busi_call: Callable[[Any], Any]) -> None:
        """Run ``busi_call(tx)`` behind the barrier, committing or rolling back ``tx``."""
        bid = self._new_barrier_id()
        with commit_or_rollback(tx.commit, tx.rollback):
            origin_error: Exception | None = None
            origin_affected = 0
            try:
                origin_affected = insert_barrier(
                    tx, self.trans_type, self.gid, self.branch_id, self._origin_op, bid, self.op
                )
            except Exception as exc:
                origin_error = exc
            current_affected = insert_barrier(
                tx, self.trans_type, self.gid, self.branch_id, self.op, bid, self.op
            )
            debugf("originAffected: %d currentAffected: %d", origin_affected, current_affected)
            if self.op == MSG_DO_OP and current_affected == 0:
                raise DuplicatedError()
            if origin_error is not None:
                raise origin_error
            if self._skip(origin_affected, current_affected):
                return
            busi_call(tx)

    def call_with_db(self, db: Any, busi_call: Callable[[Any], Any]) -> None:
        """Same as :meth:`call`, using connection ``db`` as the transaction."""
        self.call(db, busi_call)

    def query_prepared(self, db: Any) -> None:
        """Settle a msg's prepared state; raise FailureError if it was rolled back."""
        insert_barrier(
            db, self.trans_type, self.gid, MSG_DO_BRANCH0, MSG_DO_OP, MSG_DO_BARRIER1, OP_ROLLBACK
        )
        sql = (
            f"select reason from {settings.barrier_table_name} "
            "where gid=? and branch_id=? and op=? and barrier_id=?"
        )
        cursor = db.cursor()
        try:
            cursor.execute(
                _adapt_sql(sql, _paramstyle(db)), (self.gid, MSG_DO_BRANCH0, MSG_DO_OP, MSG_DO_BARRIER1)
            )
            row = cursor.fetchone()
        finally:
            cursor.close()
        if row is None:
            raise LookupError("no barrier row found")
        if row[0] == OP_ROLLBACK:
            raise FailureError()

    def redis_check_adjust_amount(self, rd: Any, key: str, amount: int, barrier_expire: int) -> None:
        """Add ``amount`` to ``key`` behind the barrier; raise FailureError if it would go negative."""
        bid = self._new_barrier_id()
        bkey1 = f"{self.gid}-{self.branch_id}-{self.op}-{bid}"
        bkey2 = f"{self.gid}-{self.branch_id}-{self._origin_op}-{bid}"
        v = _text(rd.eval(_REDIS_CHECK_ADJUST, 3, key, bkey1, bkey2, amount, self._origin_op, barrier_expire))
        debugf("lua return v: %v", v)
        if self.op == MSG_DO_OP and v == "DUPLICATE":
            raise DuplicatedError()
        if v == RESULT_FAILURE:
            raise FailureError()

    def redis_query_prepared(self, rd: Any, barrier_expire: int) -> None:
        """Redis version of :meth:`query_prepared`."""
        bkey1 = f"{self.gid}-{MSG_DO_BRANCH0}-{MSG_DO_OP}-{MSG_DO_BARRIER1}"
        v = _text(rd.eval(_REDIS_QUERY_PREPARED, 1, bkey1, barrier_expire))
        debugf("lua return v: %v", v)
        if v == RESULT_FAILURE:
            raise FailureError()

    def mongo_call(self, mc: Any, busi_call: Callable[[Any], Any]) -> None:
        """Run ``busi_call(session)`` behind the barrier inside a mongo transaction."""
        bid = self._new_barrier_id()
        with mc.start_session() as session:
            session.start_transaction()
            with commit_or_rollback(session.commit_transaction, session.abort_transaction):
                origin_error: Exception | None = None
                origin_affected = 0
                try:
                    origin_affected = _mongo_insert_barrier(
                        session, mc, self.trans_type, self.gid, self.branch_id, self._origin_op, bid, self.op
                    )
                except Exception as exc:
                    origin_error = exc
                current_affected = _mongo_insert_barrier(
                    session, mc, self.trans_type, self.gid, self.branch_id, self.op, bid, self.op
                )
                debugf("originAffected: %d currentAffected: %d", origin_affected, current_affected)
                if self.op == MSG_DO_OP and current_affected == 0:
                    raise DuplicatedError()
                if origin_error is not None:
                    raise origin_error
                if self._skip(origin_affected, current_affected):
                    return
                busi_call(session)

    def mongo_query_prepared(self, mc: Any) -> None:
        """Mongo version of :meth:`query_prepared`."""
        _mongo_insert_barrier(
            None, mc, self.trans_type, self.gid, MSG_DO_BRANCH0, MSG_DO_OP, MSG_DO_BARRIER1, OP_ROLLBACK
        )
        doc = _barrier_collection(mc).find_one(
            {"gid": self.gid, "branch_id": MSG_DO_BRANCH0, "op": MSG_DO_OP, "barrier_id": MSG_DO_BARRIER1}
        )
        if doc is None:
            raise LookupError("no barrier document found")
        if doc.get("reason") == OP_ROLLBACK:
            raise FailureError()


def _barrier_collection(mc: Any) -> Any:
    db_name, _, coll_name = settings.barrier_table_name.partition(".")
    return mc[db_name][coll_name]


def _mongo_insert_barrier(
    session: Any, mc: Any, trans_type: str, gid: str, branch_id: str, op: str, barrier_id: str, reason: str
) -> int:
    if not op:
        return 0
    barrier = _barrier_collection(mc)
    key = {"gid": gid, "branch_id": branch_id, "op": op, "barrier_id": barrier_id}
    if barrier.find_one(key, session=session) is not None:
        return 0
    barrier.insert_one({"trans_type": trans_type, **key, "reason": reason}, session=session)
    return 1


def barrier_from(trans_type: str, gid: str, branch_id: str, op: str) -> BranchBarrier:
    """Build a barrier; raise ValueError if any field is empty."""
    bb = BranchBarrier(trans_type, gid, branch_id, op)
    if not (trans_type and gid and branch_id and op):
        raise ValueError(f"invalid trans info: {bb}")
    return bb


def barrier_from_query(qs: Mapping[str, Any]) -> BranchBarrier:
    """Build a barrier from request query values."""
    return barrier_from(
        escape_get(qs, "trans_type"), escape_get(qs, "gid"), escape_get(qs, "branch_id"), escape_get(qs, "op")
    )