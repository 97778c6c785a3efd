import json
import sqlite3
from dataclasses import dataclass

import pytest

from dtmkit import utils
from dtmkit.utils import (
    DBConf,
    commit_or_rollback,
    db_exec,
    escape,
    escape_get,
    get_dsn,
    insert_barrier,
    may_replace_localhost,
    must_atoi,
    or_string,
    pooled_db,
    register_connector,
    standalone_db,
    to_json,
    xa_db,
)

password = "password"


class RecordingCursor:
    def __init__(self, paramstyle="qmark", rowcount=1):
        self.paramstyle = paramstyle
        self.rowcount = rowcount
        self.calls = []

    def execute(self, sql, args):
        self.calls.append((sql, tuple(args)))


@pytest.fixture
def fake_postgres():
    opened = []

    def connect(conf, autocommit):
        conn = object()
        opened.append((conf, autocommit, conn))
        return conn

    register_connector("postgres", connect)
    yield opened
    register_connector("postgres", None)


def test_or_string():
    assert or_string("", "", "1") == "1"
    assert or_string("", "", "") == ""
    assert or_string() == ""


def test_must_atoi():
    assert must_atoi("123") == 123
    assert must_atoi("-7") == -7
    with pytest.raises(ValueError, match="abc"):
        must_atoi("abc")
    with pytest.raises(ValueError):
        must_atoi(" 12")


def test_to_json():
    assert to_json(1) == "1"
    assert json.loads(to_json({"A": 10}))["A"] == 10


def test_to_json_dataclass_round_trip():
    @dataclass
    class E:
        A: int

    assert json.loads(to_json(E(A=10))) == {"A": 10}


def test_may_replace_localhost(monkeypatch):
    monkeypatch.setenv("IS_DOCKER", "1")
    assert may_replace_localhost("http://localhost") == "http://host.docker.internal"
    monkeypatch.setenv("IS_DOCKER", "")
    assert may_replace_localhost("http://localhost") == "http://localhost"


def test_escape():
    assert escape("a\nb\r;c") == "abc"


def test_escape_get():
    qs = {"gid": ["g1;\n", "g2"], "op": "try", "empty": []}
    assert escape_get(qs, "gid") == "g1"
    assert escape_get(qs, "op") == "try"
    assert escape_get(qs, "empty") == ""
    assert escape_get(qs, "missing") == ""


def test_get_dsn_mysql(monkeypatch):
    monkeypatch.delenv("IS_DOCKER", raising=False)
    conf = DBConf(driver="mysql", host="localhost", port=3306, user="user", password=password, db="dtm")
    assert get_dsn(conf) == (
        "user:password@tcp(localhost:3306)/dtm"
        "?charset=utf8mb4&parseTime=true&loc=Local&interpolateParams=true"
    )


def test_get_dsn_postgres(monkeypatch):
    monkeypatch.delenv("IS_DOCKER", raising=False)
    conf = DBConf(
        driver="postgres", host="localhost", port=5432, user="user",
        password=password, database_name="dtm", ssl_mode="disable",
    )
    assert get_dsn(conf) == (
        "host=localhost user=user password=password dbname='dtm' port=5432 sslmode=disable"
    )


def test_get_dsn_unknown_driver():
    with pytest.raises(ValueError, match="no-driver"):
        get_dsn(DBConf(driver="no-driver"))


def test_standalone_without_connector():
    with pytest.raises(ValueError):
        standalone_db(DBConf(driver="postgres", database_name="none"))


def test_pooled_db_reuses_connection(fake_postgres):
    conf = DBConf(driver="postgres", host="localhost", database_name="pooled")
    first = pooled_db(conf)
    assert pooled_db(conf) is first
    assert len(fake_postgres) == 1
    assert fake_postgres[0][1] is True


def test_standalone_and_xa_open_new(fake_postgres):
    conf = DBConf(driver="postgres", host="localhost", database_name="standalone")
    a = standalone_db(conf)
    b = xa_db(conf)
    assert a is not b
    assert [autocommit for _, autocommit, _ in fake_postgres] == [True, False]


def test_db_exec_sqlite():
    conn = sqlite3.connect(":memory:")
    conn.execute("create table t(a integer)")
    assert db_exec(conn, "insert into t values(?)", 1) == 1
    assert db_exec(conn, "update t set a=? where a=?", 2, 5) == 0
    assert db_exec(conn, "") == 0
    assert conn.execute("select a from t").fetchall() == [(1,)]


def test_db_exec_error_propagates():
    conn = sqlite3.connect(":memory:")
    with pytest.raises(sqlite3.OperationalError):
        db_exec(conn, "insert into missing values(?)", 1)


def test_db_exec_format_paramstyle():
    cur = RecordingCursor(paramstyle="format", rowcount=3)
    assert db_exec(cur, "select '%' where a=? and b=?", 1, 2) == 3
    assert cur.calls == [("select '%%' where a=%s and b=%s", (1, 2))]


def test_insert_barrier_sql():
    cur = RecordingCursor()
    assert insert_barrier(cur, "saga", "g1", "01", "action", "01", "action") == 1
    assert cur.calls == [(
        "insert ignore into dtm_barrier.barrier(trans_type, gid, branch_id, op, barrier_id, reason) "
        "values(?,?,?,?,?,?)",
        ("saga", "g1", "01", "action", "01", "action"),
    )]


def test_insert_barrier_empty_op():
    cur = RecordingCursor()
    assert insert_barrier(cur, "saga", "g1", "01", "", "01", "action") == 0
    assert cur.calls == []


def test_insert_barrier_uses_table_setting(monkeypatch):
    monkeypatch.setattr(utils.settings, "barrier_table_name", "x.y")
    cur = RecordingCursor()
    insert_barrier(cur, "tcc", "g", "01", "try", "01", "try")
    assert cur.calls[0][0].startswith("insert ignore into x.y(")


def test_commit_or_rollback_success():
    calls = []
    with commit_or_rollback(lambda: calls.append("success"), lambda: calls.append("fail")):
        pass
    assert calls == ["success"]


def test_commit_or_rollback_failure():
    calls = []
    with pytest.raises(RuntimeError, match="err1"):
        with commit_or_rollback(lambda: calls.append("success"), lambda: calls.append("fail")):
            raise RuntimeError("err1")
    assert calls == ["fail"]


def test_commit_or_rollback_fail_error_is_suppressed():
    calls = []

    def fail():
        calls.append("fail")
        raise ValueError("ignored")

    with pytest.raises(RuntimeError, match="err2") as info:
        with commit_or_rollback(lambda: calls.append("success"), fail):
            raise RuntimeError("err2")
    assert type(info.value) is RuntimeError
    assert calls == ["fail"]


def test_commit_or_rollback_success_error_propagates():
    def success():
        raise ValueError("commit failed")

    with pytest.raises(ValueError, match="commit failed"):
        with commit_or_rollback(success, lambda: None):
            pass