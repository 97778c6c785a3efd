from dtmkit.grpcmeta import (
    get_dtm_meta,
    get_meta,
    map_to_kvs,
    trans_base_from_metadata,
    trans_info_to_metadata,
)


def test_trans_info_keys_are_prefixed():
    md = trans_info_to_metadata("g1", "saga", "01", "action", "srv")
    assert [k for k, _ in md] == ["dtm-gid", "dtm-trans_type", "dtm-branch_id", "dtm-op", "dtm-dtm"]
    assert [v for _, v in md] == ["g1", "saga", "01", "action", "srv"]


def test_round_trip():
    md = trans_info_to_metadata("g1", "tcc", "0102", "try", "srv:1")
    tb = trans_base_from_metadata(md)
    assert (tb.gid, tb.trans_type, tb.branch_id, tb.op, tb.dtm) == ("g1", "tcc", "0102", "try", "srv:1")


def test_empty_metadata():
    tb = trans_base_from_metadata(None)
    assert (tb.gid, tb.trans_type, tb.branch_id, tb.op) == ("", "", "", "")


def test_map_to_kvs():
    kvs = map_to_kvs({"a": "1", "b": "2"})
    assert len(kvs) == 4
    assert dict(zip(kvs[::2], kvs[1::2])) == {"a": "1", "b": "2"}
    assert map_to_kvs({}) == []


def test_get_meta():
    md = [("test_header", "v1"), ("test_header", "v2"), ("dtm-phase2_url", "u")]
    assert get_meta(md, "test_header") == "v1"
    assert get_meta(md, "TEST_HEADER") == "v1"
    assert get_meta(md, "missing") == ""
    assert get_dtm_meta(md, "phase2_url") == "u"
    assert get_dtm_meta({"dtm-gid": ["g"]}, "gid") == "g"