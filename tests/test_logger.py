import json

import pytest

from dtmkit import logger


class Recorder:
    def __init__(self):
        self.records = []

    def debug(self, msg):
        self.records.append(("debug", msg))

    def info(self, msg):
        self.records.append(("info", msg))

    def warning(self, msg):
        self.records.append(("warn", msg))

    def error(self, msg):
        self.records.append(("error", msg))


@pytest.fixture(autouse=True)
def reset_logger(monkeypatch):
    monkeypatch.delenv("DTM_DEBUG", raising=False)
    yield
    monkeypatch.delenv("DTM_DEBUG", raising=False)
    logger.init_log("debug")


def test_with_logger_receives_formatted_messages():
    rec = Recorder()
    logger.with_logger(rec)
    logger.debugf("a %s msg", "debug")
    logger.infof("a %s msg", "info")
    logger.warnf("a %s msg", "warn")
    logger.errorf("a %s msg", "error")
    assert rec.records == [
        ("debug", "a debug msg"),
        ("info", "a info msg"),
        ("warn", "a warn msg"),
        ("error", "a error msg"),
    ]


def test_go_style_verbs():
    rec = Recorder()
    logger.with_logger(rec)
    logger.infof("originAffected: %d currentAffected: %d", 1, 0)
    logger.infof("value: %v", "x")
    assert rec.records == [
        ("info", "originAffected: 1 currentAffected: 0"),
        ("info", "value: x"),
    ]


def test_message_without_args_is_kept_verbatim():
    rec = Recorder()
    logger.with_logger(rec)
    logger.errorf("100% done")
    assert rec.records == [("error", "100% done")]


def test_json_output_to_file(tmp_path):
    path = tmp_path / "test.log"
    logger.init_log2("debug", f"{path},stderr", 0, "")
    logger.debugf("a debug msg to console and file")
    entries = [json.loads(line) for line in path.read_text().splitlines()]
    assert entries[-1]["msg"] == "a debug msg to console and file"
    assert entries[-1]["level"] == "debug"


def test_level_filters_lower_levels(tmp_path):
    path = tmp_path / "warn.log"
    logger.init_log2("warn", str(path), 0, "")
    logger.infof("hidden")
    logger.warnf("shown")
    messages = [json.loads(line)["msg"] for line in path.read_text().splitlines()]
    assert messages == ["shown"]


def test_console_encoding_with_debug_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DTM_DEBUG", "1")
    path = tmp_path / "console.log"
    logger.init_log2("debug", str(path), 0, "")
    logger.debugf("a debug msg")
    text = path.read_text()
    assert "a debug msg" in text
    assert "DEBUG" in text


def test_rotation_outputs(tmp_path):
    first = tmp_path / "test2.log"
    second = tmp_path / "dtm-test.log"
    logger.init_log2(
        "debug",
        f"{first},{second},stdout,stderr",
        1,
        '{"maxsize": 1, "maxage": 1, "maxbackups": 1, "compress": false}',
    )
    logger.debugf("a debug msg to both files")
    assert "a debug msg to both files" in first.read_text()
    assert "a debug msg to both files" in second.read_text()


def test_bad_rotation_config_is_fatal(tmp_path):
    with pytest.raises(SystemExit) as exc:
        logger.init_log2("debug", str(tmp_path / "x.log"), 1, "not json")
    assert exc.value.code == 1


def test_bad_level_is_fatal():
    with pytest.raises(SystemExit) as exc:
        logger.init_log("loud")
    assert exc.value.code == 1


def test_fatal_helpers_do_nothing_without_error(capsys):
    logger.fatalf_if(False, "nothing")
    logger.fatal_if_error(None)
    assert capsys.readouterr().err == ""


def test_fatal_if_error_exits(capsys):
    with pytest.raises(SystemExit) as exc:
        logger.fatal_if_error(ValueError("boom"))
    assert exc.value.code == 1
    assert "fatal error: boom" in capsys.readouterr().err