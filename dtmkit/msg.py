"""Reliable messages: prepare, run local business, then submit."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
from typing import Any

from .barrier import BranchBarrier, barrier_from
from .consts import MSG_DO_BRANCH0, MSG_DO_OP
from .errors import FailureError
from .transbase import TransBase
from .utils import or_string, to_json


class Msg(TransBase):
    """A reliable message transaction."""

    def __init__(self, server: str, gid: str) -> None:
        super().__init__(gid, "msg", server, "")
        self.delay = 0

    def add(self, action: str, post_data: Any) -> Msg:
        """Append a step calling ``action`` with ``post_data`` as JSON body."""
        self.steps.append({"action": action})
        self.payloads.append(to_json(post_data))
        return self

    def set_delay(self, delay: int) -> Msg:
        """Delay the branch calls by ``delay`` seconds."""
        self.delay = delay
        return self

    def prepare(self, query_prepared: str) -> None:
        """Prepare the message; it is submitted later."""
        self.query_prepared = or_string(query_prepared, self.query_prepared)
        self.call_dtm(self, "prepare")

    def submit(self) -> None:
        """Submit the message."""
        self.build_custom_options()
        self.call_dtm(self, "submit")

    def do_and_submit_db(
        self, query_prepared: str, db: Any, busi_call: Callable[[Any], Any]
    ) -> None:
        """Run ``busi_call(db)`` behind the msg barrier, then submit."""
        self.do_and_submit(query_prepared, lambda bb: bb.call_with_db(db, busi_call))

    def do_and_submit(
        self, query_prepared: str, busi_call: Callable[[BranchBarrier], Any]
    ) -> None:
        """Prepare, run ``busi_call``, then submit or abort.

        An error from ``busi_call`` is re-raised. A FailureError aborts directly;
        any other error makes the outcome be settled through ``query_prepared``.
        """
        bb = barrier_from(self.trans_type, self.gid, MSG_DO_BRANCH0, MSG_DO_OP)
        self.prepare(query_prepared)
        try:
            busi_call(bb)
        except FailureError:
            self._abort()
            raise
        except Exception as busi_error:
            try:
                self.request_branch("GET", None, bb.branch_id, bb.op, query_prepared)
            except FailureError:
                self._abort()
            except Exception:
                pass
            else:
                with suppress(Exception):
                    self.submit()
            raise busi_error
        self.submit()

    def build_custom_options(self) -> None:
        """Store the delay in the custom data sent to the server."""
        if self.delay > 0:
            self.custom_data = to_json({"delay": self.delay})

    def _abort(self) -> None:
        with suppress(Exception):
            self.call_dtm(self, "abort")