"""Tests for the logger proxy, the log file sink and level handling."""

import pytest
from conftest import FakeResult, FakeStore
from pydantic import ValidationError

from harbinger.core import log
from harbinger.core.log import (
    LEVELS,
    ConsoleSink,
    FileSink,
    Logger,
    level_name,
    logger,
    setup_logger,
)
from harbinger.git.simulator import MergeSimulator


@pytest.fixture
def log_file(tmp_path):
    """Install a file-only logger; restore console logging afterwards."""
    path = tmp_path / "logs" / "harbinger.log"

    def install(level="debug"):
        return setup_logger(
            log_root=tmp_path,
            run_name="repo",
            console=ConsoleSink(enabled=False),
            file=FileSink(enabled=True, level=level, path=str(path)),
        )

    yield path, install

    log.current_logger().close()
    setup_logger(log_root=tmp_path, run_name="test",
                 console=ConsoleSink(level="debug"))


def read_lines(installed, path):
    installed.close()
    return path.read_text().splitlines()


def test_proxy_is_silent_before_setup(monkeypatch):
    monkeypatch.setattr(log, "_current_logger", None)

    assert logger.info("nobody listening", count=1) is None
    with logger.span("Simulating merge", target="origin/main"):
        logger.debug("inside")
    with logger:
        pass


def test_merge_preview_is_recorded_in_log_file(log_file):
    path, install = log_file
    installed = install()
    store = FakeStore()
    store.commits = {"main": "aaa", "origin/main": "bbb"}
    store.merge_tree_result = FakeResult(stdout="tree\n", exited=0)

    MergeSimulator(store).detect_conflicts("main", "origin/main")

    lines = read_lines(installed, path)
    preview = [line for line in lines if "Merge preview complete" in line]
    assert len(preview) == 1
    assert "[debug]" in preview[0]
    assert "strategy='merge-tree'" in preview[0]
    assert "conflicts=0" in preview[0]
    span = [line for line in lines if "Simulating merge" in line]
    assert span and "target='origin/main'" in span[0]


def test_file_path_template(tmp_path):
    sink = FileSink(path="{log_root}/{run_name}/harbinger.log")

    expected = tmp_path / "repo" / "harbinger.log"
    assert sink.resolve_path(tmp_path, "repo") == expected


@pytest.mark.parametrize("level, kept, dropped", [
    ("trace", ["trace", "debug", "warn"], ["spew"]),
    ("debug", ["debug", "info", "warn"], ["spew", "trace"]),
    ("warn", ["warn", "error"], ["info", "debug"]),
])
def test_file_level_filters_records(log_file, level, kept, dropped):
    path, install = log_file
    installed = install(level)

    for name in ("spew", "trace", "debug", "info", "warn", "error"):
        getattr(logger, name)(f"{name} record")

    text = "\n".join(read_lines(installed, path))
    for name in kept:
        assert f"[{name}] {name} record" in text
    for name in dropped:
        assert f"{name} record" not in text


def test_multiline_message_stays_on_one_line(log_file):
    path, install = log_file
    installed = install()

    logger.warn("git said:\nfatal: bad object")

    lines = read_lines(installed, path)
    matching = [line for line in lines if "git said" in line]
    assert len(matching) == 1
    assert "git said:\\nfatal: bad object" in matching[0]
    assert not any(line.startswith("fatal:") for line in lines)


def test_close_flushes_and_closes_file(log_file):
    path, install = log_file
    installed = install()
    logger.info("before close")

    installed.close()

    assert installed.file._file.closed
    assert "before close" in path.read_text()
    # Closing twice is harmless
    installed.close()


def test_sinks_inherit_logger_level():
    built = Logger(level="warn", file=FileSink(level="debug"))

    assert built.console.level == "warn"
    assert built.file.level == "debug"
    assert built.otlp.level == "warn"


@pytest.mark.parametrize("value", ["loud", "verbose", ""])
def test_unknown_level_rejected(value):
    with pytest.raises(ValidationError, match="unknown log level"):
        ConsoleSink(level=value)

    with pytest.raises(ValueError, match="unknown log level"):
        Logger().log(value, "message")


def test_level_names_are_case_insensitive():
    assert FileSink(level="DEBUG").level == "debug"


@pytest.mark.parametrize("number, name", [
    (LEVELS["spew"], "spew"),
    (LEVELS["spew"] + 1, "spew"),
    (LEVELS["trace"], "trace"),
    (LEVELS["info"] + 2, "info"),
    (LEVELS["warn"], "warn"),
    (LEVELS["fatal"], "fatal"),
])
def test_level_name(number, name):
    assert level_name(number) == name
