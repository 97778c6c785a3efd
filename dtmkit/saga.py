"""Saga transactions: ordered actions with compensations."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .transbase import TransBase
from .utils import to_json


class Saga(TransBase):
    """A saga global transaction."""

    def __init__(self, server: str, gid: str) -> None:
        super().__init__(gid, "saga", server, "")
        self.orders: dict[int, list[int]] = {}

    def add(self, action: str, compensate: str, post_data: Any) -> Saga:
        """Append a step with its compensation."""
        self.steps.append({"action": action, "compensate": compensate})
        self.payloads.append(to_json(post_data))
        return self

    def add_branch_order(self, branch: int, pre_branches: Iterable[int]) -> Saga:
        """Run ``branch`` only after all ``pre_branches``."""
        self.orders[branch] = list(pre_branches)
        return self

    def set_concurrent(self) -> Saga:
        """Run the branches concurrently."""
        self.concurrent = True
        return self

    def submit(self) -> None:
        """Submit the saga."""
        self.build_custom_options()
        self.call_dtm(self, "submit")

    def build_custom_options(self) -> None:
        """Store the branch orders in the custom data when concurrent."""
        if self.concurrent:
            self.custom_data = to_json({"orders": self.orders, "concurrent": self.concurrent})