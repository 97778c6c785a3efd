"""Transaction information carried in grpc metadata."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .transbase import TransBase

DTM_PREFIX = "dtm-"

Metadata = Iterable[tuple[str, str]]


def trans_info_to_metadata(gid: str, trans_type: str, branch_id: str, op: str, dtm: str) -> list[tuple[str, str]]:
    """Return metadata pairs describing a branch call."""
    return [
        (DTM_PREFIX + "gid", gid),
        (DTM_PREFIX + "trans_type", trans_type),
        (DTM_PREFIX + "branch_id", branch_id),
        (DTM_PREFIX + "op", op),
        (DTM_PREFIX + "dtm", dtm),
    ]


def map_to_kvs(m: Mapping[str, str]) -> list[str]:
    """Flatten a mapping into ``[key, value, key, value, ...]``."""
    return [item for pair in m.items() for item in pair]


def _pairs(metadata: Any) -> Iterable[tuple[str, Any]]:
    if metadata is None:
        return ()
    if isinstance(metadata, Mapping):
        return metadata.items()
    return metadata


def get_meta(metadata: Any, name: str) -> str:
    """Return the first value of ``name`` (case-insensitive), or ''."""
    wanted = name.lower()
    for key, value in _pairs(metadata):
        if key.lower() == wanted:
            if isinstance(value, (list, tuple)):
                return value[0] if value else ""
            return value
    return ""


def get_dtm_meta(metadata: Any, name: str) -> str:
    """Return the value of the dtm-prefixed key ``name``, or ''."""
    return get_meta(metadata, DTM_PREFIX + name)


def trans_base_from_metadata(metadata: Any) -> TransBase:
    """Build transaction info from incoming metadata."""
    tb = TransBase(
        get_dtm_meta(metadata, "gid"),
        get_dtm_meta(metadata, "trans_type"),
        get_dtm_meta(metadata, "dtm"),
        get_dtm_meta(metadata, "branch_id"),
    )
    tb.op = get_dtm_meta(metadata, "op")
    return tb