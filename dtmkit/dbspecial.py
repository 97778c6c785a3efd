"""SQL dialect differences between the supported databases."""

from __future__ import annotations

import itertools
import re
from abc import ABC, abstractmethod

from .consts import DB_TYPE_MYSQL, DB_TYPE_POSTGRES


class DBSpecial(ABC):
    """Database specific SQL generation."""

    @abstractmethod
    def placeholder_sql(self, sql: str) -> str:
        """Rewrite ``?`` placeholders into the dialect's form."""

    @abstractmethod
    def insert_ignore_template(self, table_and_values: str, pg_constraint: str) -> str:
        """Build an insert that silently skips duplicate rows."""

    @abstractmethod
    def xa_sql(self, command: str, xid: str) -> str:
        """Build the statement for an XA command, or '' if none is needed."""


class MysqlDBSpecial(DBSpecial):
    """MySQL dialect."""

    def placeholder_sql(self, sql: str) -> str:
        return sql

    def insert_ignore_template(self, table_and_values: str, pg_constraint: str) -> str:
        return f"insert ignore into {table_and_values}"

    def xa_sql(self, command: str, xid: str) -> str:
        return f"xa {command} '{xid}'"


class PostgresDBSpecial(DBSpecial):
    """PostgreSQL dialect."""

    def placeholder_sql(self, sql: str) -> str:
        counter = itertools.count(1)
        return re.sub(r"\?", lambda _: f"${next(counter)}", sql)

    def insert_ignore_template(self, table_and_values: str, pg_constraint: str) -> str:
        return f"insert into {table_and_values} on conflict ON CONSTRAINT {pg_constraint} do nothing"

    def xa_sql(self, command: str, xid: str) -> str:
        return {
            "end": "",
            "start": "begin",
            "prepare": f"prepare transaction '{xid}'",
            "commit": f"commit prepared '{xid}'",
            "rollback": f"rollback prepared '{xid}'",
        }.get(command, "")


_SPECIALS: dict[str, DBSpecial] = {
    DB_TYPE_MYSQL: MysqlDBSpecial(),
    DB_TYPE_POSTGRES: PostgresDBSpecial(),
}
_current_db_type = DB_TYPE_MYSQL


def get_db_special() -> DBSpecial:
    """Return the dialect of the current database type."""
    return _SPECIALS[_current_db_type]


def set_current_db_type(db_type: str) -> None:
    """Select the database type; raise ValueError if it is unknown."""
    global _current_db_type
    if db_type not in _SPECIALS:
        raise ValueError(f"unknown db type '{db_type}'")
    _current_db_type = db_type


def get_current_db_type() -> str:
    """Return the current database type."""
    return _current_db_type