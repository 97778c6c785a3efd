import dataclasses

import pytest

from dtmkit import config as cfg
from dtmkit.config import (
    ConfigError,
    MicroService,
    ServerConfig,
    Store,
    check_config,
    load_from_env,
    must_load_config,
    to_underscore_upper,
)


def test_to_underscore_upper():
    assert to_underscore_upper("MicroService_Driver") == "MICRO_SERVICE_DRIVER"


def test_load_from_env(monkeypatch):
    ms = MicroService()
    monkeypatch.setenv("T_DRIVER", "d1")
    load_from_env("T", ms)
    assert ms.driver == "d1"


def test_load_from_env_resets_to_defaults(monkeypatch):
    monkeypatch.delenv("T_DRIVER", raising=False)
    ms = MicroService(driver="other", target="x")
    load_from_env("T", ms)
    assert ms.driver == "default"
    assert ms.target == ""


def test_load_from_env_bad_int(monkeypatch):
    monkeypatch.setenv("T_PORT", "abc")
    with pytest.raises(ValueError):
        load_from_env("T", Store())


def test_load_from_env_rejects_non_dataclass():
    with pytest.raises(TypeError):
        load_from_env("T", {"a": 1})


def test_check_config():
    conf = ServerConfig()
    conf.retry_interval = 1
    with pytest.raises(ConfigError) as exc:
        check_config(conf)
    assert str(exc.value) == "RetryInterval should not be less than 10"

    conf.retry_interval = 10
    conf.timeout_to_fail = 5
    with pytest.raises(ConfigError) as exc:
        check_config(conf)
    assert str(exc.value) == "TimeoutToFail should not be less than RetryInterval"

    conf.timeout_to_fail = 20
    assert check_config(conf) is None

    cases = [
        (Store(driver=cfg.MYSQL), "Db host not valid "),
        (Store(driver=cfg.MYSQL, host="127.0.0.1"), "Db port not valid "),
        (Store(driver=cfg.MYSQL, host="127.0.0.1", port=8686), "Db user not valid "),
        (Store(driver=cfg.REDIS, host="", port=8686), "Redis host not valid"),
        (Store(driver=cfg.REDIS, host="127.0.0.1", port=0), "Redis port not valid"),
    ]
    for store, message in cases:
        conf.store = store
        with pytest.raises(ConfigError) as exc:
            check_config(conf)
        assert str(exc.value) == message


@pytest.mark.parametrize("name,value", [("retry_interval", 9), ("timeout_to_fail", 9)])
def test_config_int_fields(name, value):
    conf = dataclasses.replace(ServerConfig(), **{name: value})
    with pytest.raises(ConfigError):
        check_config(conf)


def test_store_db_conf():
    store = Store(driver=cfg.MYSQL, host="h", port=3306, user="u", database_name="d")
    assert store.is_db() is True
    db_conf = store.get_db_conf()
    assert (db_conf.driver, db_conf.host, db_conf.port, db_conf.user) == ("mysql", "h", 3306, "u")
    assert db_conf.ssl_mode == "disable"
    assert Store(driver=cfg.REDIS).is_db() is False


def test_must_load_config_from_file(tmp_path, monkeypatch):
    monkeypatch.delenv("RETRY_INTERVAL", raising=False)
    monkeypatch.delenv("STORE_DRIVER", raising=False)
    path = tmp_path / "conf.yml"
    path.write_text("Store:\n  Driver: redis\n  Host: localhost\n  Port: 6379\nRetryInterval: 15\n")
    loaded = must_load_config(str(path))
    assert loaded.store.driver == "redis"
    assert loaded.store.port == 6379
    assert loaded.retry_interval == 15
    assert loaded.timeout_to_fail == 35


def test_must_load_config_env(monkeypatch):
    monkeypatch.setenv("STORE_DRIVER", "boltdb")
    monkeypatch.setenv("RETRY_INTERVAL", "20")
    monkeypatch.setenv("TIMEOUT_TO_FAIL", "40")
    loaded = must_load_config("")
    assert loaded.retry_interval == 20
    assert loaded.timeout_to_fail == 40


def test_must_load_config_unknown_key(tmp_path, monkeypatch):
    monkeypatch.delenv("RETRY_INTERVAL", raising=False)
    path = tmp_path / "conf.yml"
    path.write_text("Unknown: 1\n")
    with pytest.raises(SystemExit):
        must_load_config(str(path))


def test_must_load_config_invalid(monkeypatch):
    monkeypatch.setenv("RETRY_INTERVAL", "5")
    with pytest.raises(SystemExit):
        must_load_config("")