"""Server configuration: dataclasses, environment and YAML loading, validation."""

from __future__ import annotations

import dataclasses
import json
import os
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

from .consts import DB_TYPE_MYSQL, DB_TYPE_POSTGRES
from .logger import fatal_if_error, fatalf_if, infof
from .utils import DBConf, must_atoi

DTM_METRICS_PORT = 8889
MYSQL = "mysql"
REDIS = "redis"
BOLTDB = "boltdb"
POSTGRES = "postgres"


class ConfigError(ValueError):
    """The configuration is not valid."""


def _opt(yaml_name: str, default: Any = "") -> Any:
    return field(default=default, metadata={"yaml": yaml_name})


def _section(yaml_name: str, factory: Any) -> Any:
    return field(default_factory=factory, metadata={"yaml": yaml_name})


@dataclass
class MicroService:
    """Microservice settings for grpc."""

    driver: str = _opt("Driver", "default")
    target: str = _opt("Target")
    end_point: str = _opt("EndPoint")


@dataclass
class HTTPMicroService:
    """Microservice settings for http."""

    driver: str = _opt("Driver", "default")
    registry_type: str = _opt("RegistryType")
    registry_address: str = _opt("RegistryAddress")
    registry_options: str = _opt("RegistryOptions", "{}")
    target: str = _opt("Target")
    end_point: str = _opt("EndPoint")


@dataclass
class LogConfig:
    """Log output settings."""

    outputs: str = _opt("Outputs", "stderr")
    rotation_enable: int = _opt("RotationEnable", 0)
    rotation_config_json: str = _opt("RotationConfigJSON", "{}")


@dataclass
class Store:
    """Storage settings."""

    driver: str = _opt("Driver", "boltdb")
    host: str = _opt("Host")
    port: int = _opt("Port", 0)
    user: str = _opt("User")
    password: str = _opt("Password")
    database_name: str = _opt("DatabaseName")
    ssl_mode: str = _opt("SslMode", "disable")
    max_open_conns: int = _opt("MaxOpenConns", 500)
    max_idle_conns: int = _opt("MaxIdleConns", 500)
    conn_max_life_time: int = _opt("ConnMaxLifeTime", 5)
    data_expire: int = _opt("DataExpire", 604800)
    finished_data_expire: int = _opt("FinishedDataExpire", 86400)
    redis_prefix: str = _opt("RedisPrefix", "{a}")
    trans_global_table: str = _opt("TransGlobalTable", "dtm.trans_global")
    trans_branch_op_table: str = _opt("TransBranchOpTable", "dtm.trans_branch_op")

    def is_db(self) -> bool:
        """Whether the driver is a SQL database."""
        return self.driver in (DB_TYPE_MYSQL, DB_TYPE_POSTGRES)

    def get_db_conf(self) -> DBConf:
        """Return the database connection settings."""
        return DBConf(
            driver=self.driver,
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            database_name=self.database_name,
            ssl_mode=self.ssl_mode,
        )


@dataclass
class ServerConfig:
    """Configuration of the server."""

    store: Store = _section("Store", Store)
    trans_cron_interval: int = _opt("TransCronInterval", 3)
    timeout_to_fail: int = _opt("TimeoutToFail", 35)
    retry_interval: int = _opt("RetryInterval", 10)
    request_timeout: int = _opt("RequestTimeout", 3)
    http_port: int = _opt("HttpPort", 36789)
    grpc_port: int = _opt("GrpcPort", 36790)
    json_rpc_port: int = _opt("JsonRpcPort", 36791)
    micro_service: MicroService = _section("MicroService", MicroService)
    http_micro_service: HTTPMicroService = _section("HttpMicroService", HTTPMicroService)
    update_branch_sync: int = _opt("UpdateBranchSync", 0)
    update_branch_async_goroutine_num: int = _opt("UpdateBranchAsyncGoroutineNum", 1)
    log_level: str = _opt("LogLevel", "info")
    log: LogConfig = _section("Log", LogConfig)


config = ServerConfig()

_LAST_CAP = re.compile(r"([A-Z])([A-Z][a-z])")
_FIRST_CAP = re.compile(r"([a-z])([A-Z]+)")


def to_underscore_upper(key: str) -> str:
    """Turn a CamelCase path such as ``MicroService_Driver`` into ``MICRO_SERVICE_DRIVER``."""
    key = key.strip("_")
    key = _LAST_CAP.sub(r"\1_\2", key)
    key = _FIRST_CAP.sub(r"\1_\2", key)
    return key.upper()


def _yaml_name(f: dataclasses.Field) -> str:
    return f.metadata.get("yaml", f.name)


def _field_default(f: dataclasses.Field, current: Any) -> Any:
    if f.default is not dataclasses.MISSING:
        return f.default
    if f.default_factory is not dataclasses.MISSING:
        return f.default_factory()
    return type(current)()


def _is_instance(obj: Any) -> bool:
    return dataclasses.is_dataclass(obj) and not isinstance(obj, type)


def load_from_env(prefix: str, conf: Any) -> None:
    """Set every field of ``conf`` from the environment, falling back to its default."""
    if not _is_instance(conf):
        raise TypeError(f"should be a dataclass instance, but {type(conf).__name__} found")
    for f in dataclasses.fields(conf):
        name = f"{prefix}_{_yaml_name(f)}"
        current = getattr(conf, f.name)
        if _is_instance(current):
            load_from_env(name, current)
            continue
        raw = os.environ.get(to_underscore_upper(name), "")
        default = _field_default(f, current)
        if isinstance(current, bool):
            raise TypeError(f"unsupported type: {type(current).__name__}")
        if isinstance(current, str):
            setattr(conf, f.name, raw or default)
        elif isinstance(current, int):
            setattr(conf, f.name, must_atoi(raw or str(default) or "0"))
        else:
            raise TypeError(f"unsupported type: {type(current).__name__}")


def _apply_yaml(conf: Any, data: Any) -> None:
    if not isinstance(data, dict):
        raise ConfigError(f"cannot unmarshal {data!r} into {type(conf).__name__}")
    by_name = {_yaml_name(f): f for f in dataclasses.fields(conf)}
    for key, value in data.items():
        f = by_name.get(key)
        if f is None:
            raise ConfigError(f"field {key} not found in type {type(conf).__name__}")
        current = getattr(conf, f.name)
        if _is_instance(current):
            if value is not None:
                _apply_yaml(current, value)
        elif isinstance(current, int):
            if value is None:
                setattr(conf, f.name, 0)
            elif isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"cannot unmarshal {value!r} into {key} of type int")
            else:
                setattr(conf, f.name, value)
        else:
            if isinstance(value, (dict, list)):
                raise ConfigError(f"cannot unmarshal {value!r} into {key} of type string")
            if value is None:
                value = ""
            elif isinstance(value, bool):
                value = "true" if value else "false"
            setattr(conf, f.name, str(value))


def check_config(conf: ServerConfig) -> None:
    """Raise ConfigError if ``conf`` is not usable."""
    if conf.retry_interval < 10:
        raise ConfigError("RetryInterval should not be less than 10")
    if conf.timeout_to_fail < conf.retry_interval:
        raise ConfigError("TimeoutToFail should not be less than RetryInterval")
    store = conf.store
    if store.driver in (MYSQL, POSTGRES):
        if not store.host:
            raise ConfigError("Db host not valid ")
        if store.port == 0:
            raise ConfigError("Db port not valid ")
        if not store.user:
            raise ConfigError("Db user not valid ")
    elif store.driver == REDIS:
        if not store.host:
            raise ConfigError("Redis host not valid")
        if store.port == 0:
            raise ConfigError("Redis port not valid")


def must_load_config(conf_file: str) -> ServerConfig:
    """Load the global config from the environment and ``conf_file``; exit on any error."""
    load_from_env("", config)
    if conf_file:
        try:
            with open(conf_file, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
            if data is not None:
                _apply_yaml(config, data)
        except (OSError, yaml.YAMLError, ConfigError) as exc:
            fatal_if_error(exc)
    infof("config file: %s loaded config is: \n%s", conf_file, json.dumps(dataclasses.asdict(config), indent=2))
    try:
        check_config(config)
    except ConfigError as exc:
        fatalf_if(True, "config error: '%v'.", exc)
    return config