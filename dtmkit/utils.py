"""Shared helpers: database access, JSON, string utilities and settings."""

from __future__ import annotations

import base64
import dataclasses
import itertools
import json
import os
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field
from typing import Any

from .consts import DB_TYPE_MYSQL, DB_TYPE_POSTGRES
from .dbspecial import get_db_special
from .logger import debugf, errorf, infof


@dataclass
class DBConf:
    """Connection settings of a database."""

    driver: str = ""
    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    db: str = ""
    ssl_mode: str = ""
    database_name: str = ""


@dataclass
class Settings:
    """Client-wide tunables."""

    xa_sql_timeout_ms: int = 15000
    passthrough_headers: list[str] = field(default_factory=list)
    barrier_table_name: str = "dtm_barrier.barrier"


settings = Settings()

Connector = Callable[[DBConf, bool], Any]

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_DRIVER_PARAMSTYLES = {
    "pymysql": "format",
    "MySQLdb": "format",
    "pg8000": "format",
    "psycopg2": "pyformat",
    "psycopg": "pyformat",
    "sqlite3": "qmark",
}


def or_string(*args: str) -> str:
    """Return the first non-empty string, or ''."""
    return next((s for s in args if s), "")


def must_atoi(s: str) -> int:
    """Parse a decimal integer; raise ValueError if ``s`` is not one."""
    if not _INT_PATTERN.fullmatch(s):
        raise ValueError("convert to int error: " + s)
    return int(s)


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


def to_json(v: Any) -> str:
    """Serialize ``v`` as compact JSON."""
    return json.dumps(v, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def may_replace_localhost(host: str) -> str:
    """Point localhost at the docker host when running inside docker."""
    if os.environ.get("IS_DOCKER"):
        return host.replace("localhost", "host.docker.internal", 1).replace(
            "127.0.0.1", "host.docker.internal", 1
        )
    return host


def escape(value: str) -> str:
    """Strip line breaks and semicolons."""
    return value.replace("\n", "").replace("\r", "").replace(";", "")


def escape_get(qs: Mapping[str, Any], key: str) -> str:
    """Return the first query value for ``key``, escaped, or ''."""
    value = qs.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return escape(value or "")


def get_dsn(conf: DBConf) -> str:
    """Build the data source name of ``conf``; raise ValueError for unknown drivers."""
    host = may_replace_localhost(conf.host)
    if conf.driver == DB_TYPE_MYSQL:
        return (
            f"{conf.user}:{conf.password}@tcp({host}:{conf.port})/{conf.db}"
            "?charset=utf8mb4&parseTime=true&loc=Local&interpolateParams=true"
        )
    if conf.driver == DB_TYPE_POSTGRES:
        return (
            f"host={host} user={conf.user} password={conf.password} "
            f"dbname='{conf.database_name}' port={conf.port} sslmode={conf.ssl_mode}"
        )
    raise ValueError(f"unknow driver: {conf.driver}")


def _connect_mysql(conf: DBConf, autocommit: bool) -> Any:
    import pymysql

    return pymysql.connect(
        host=may_replace_localhost(conf.host),
        port=int(conf.port),
        user=conf.user,
        password=conf.password,
        database=conf.db or None,
        charset="utf8mb4",
        autocommit=autocommit,
    )


_connectors: dict[str, Connector] = {DB_TYPE_MYSQL: _connect_mysql}
_pool: dict[str, Any] = {}
_pool_lock = threading.Lock()


def register_connector(driver: str, connect: Connector | None) -> None:
    """Set the function opening DB-API connections for ``driver``; None removes it.

    ``connect`` is called as ``connect(conf, autocommit)``.
    """
    if connect is None:
        _connectors.pop(driver, None)
    else:
        _connectors[driver] = connect


def _masked(dsn: str, conf: DBConf) -> str:
    return dsn.replace(conf.password, "****", 1) if conf.password else dsn


def _open(conf: DBConf, autocommit: bool, dsn: str) -> Any:
    connect = _connectors.get(conf.driver)
    if connect is None:
        raise ValueError(f"no connector registered for driver: {conf.driver}")
    infof("opening standalone %s: %s", conf.driver, _masked(dsn, conf))
    return connect(conf, autocommit)


def standalone_db(conf: DBConf) -> Any:
    """Open a new autocommitting connection."""
    return _open(conf, True, get_dsn(conf))


def pooled_db(conf: DBConf) -> Any:
    """Return a shared connection for ``conf``, opening it on first use."""
    dsn = get_dsn(conf)
    with _pool_lock:
        db = _pool.get(dsn)
        if db is None:
            db = standalone_db(conf)
            _pool[dsn] = db
    return db


def xa_db(conf: DBConf) -> Any:
    """Open a new connection for XA work, with autocommit off."""
    dsn = get_dsn(conf)
    if conf.driver == DB_TYPE_MYSQL:
        dsn += "&autocommit=0"
    return _open(conf, False, dsn)


def _paramstyle(db: Any) -> str:
    style = getattr(db, "paramstyle", None)
    if isinstance(style, str):
        return style
    return _DRIVER_PARAMSTYLES.get(type(db).__module__.partition(".")[0], "qmark")


def _adapt_sql(sql: str, style: str) -> str:
    if style in ("format", "pyformat"):
        return sql.replace("%", "%%").replace("?", "%s")
    if style == "numeric":
        counter = itertools.count(1)
        return re.sub(r"\?", lambda _: f":{next(counter)}", sql)
    return get_db_special().placeholder_sql(sql)


def db_exec(db: Any, sql: str, *args: Any) -> int:
    """Execute ``sql`` with ``?`` placeholders on a connection or cursor; return rows affected."""
    if not sql:
        return 0
    sql = _adapt_sql(sql, _paramstyle(db))
    began = time.monotonic()
    cursor = db if hasattr(db, "rowcount") else db.cursor()
    try:
        cursor.execute(sql, args)
        affected = cursor.rowcount
    except Exception as exc:
        used = int((time.monotonic() - began) * 1000)
        errorf("used: %d ms exec error: %v for %s %v", used, exc, sql, list(args))
        raise
    finally:
        if cursor is not db:
            cursor.close()
    used = int((time.monotonic() - began) * 1000)
    debugf("used: %d ms affected: %d for %s %v", used, affected, sql, list(args))
    return affected


def insert_barrier(
    tx: Any, trans_type: str, gid: str, branch_id: str, op: str, barrier_id: str, reason: str
) -> int:
    """Insert a barrier row unless it exists; return rows inserted."""
    if not op:
        return 0
    sql = get_db_special().insert_ignore_template(
        settings.barrier_table_name
        + "(trans_type, gid, branch_id, op, barrier_id, reason) values(?,?,?,?,?,?)",
        "uniq_barrier",
    )
    return db_exec(tx, sql, trans_type, gid, branch_id, op, barrier_id, reason)


@contextmanager
def commit_or_rollback(success: Callable[[], Any], fail: Callable[[], Any]) -> Iterator[None]:
    """Run ``success`` if the block completes, else ``fail`` and re-raise."""
    try:
        yield
    except BaseException:
        with suppress(Exception):
            fail()
        raise
    success()