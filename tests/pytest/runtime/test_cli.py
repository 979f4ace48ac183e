# tests/pytest/runtime/test_cli.py
import logging
import threading
from unittest.mock import MagicMock

import pytest

import modbus_gateway.__main__ as cli


MODULE = "modbus_gateway.__main__"


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    for var in ("GATEWAY_CONFIG", "GATEWAY_LOG_LEVEL", "GATEWAY_LOG_FORMAT", "GATEWAY_SCHEDULING"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    # keep the package logger untouched for other tests
    get_logger = MagicMock(return_value=(logging.getLogger("test_cli"), None))
    monkeypatch.setattr(f"{MODULE}.get_logger", get_logger)
    return get_logger


@pytest.fixture
def fake_runtime():
    runtime = MagicMock()
    runtime.init.return_value = True
    runtime.start_loop.return_value = True
    runtime.cleanup.return_value = True
    return runtime


def _set_shutdown():
    shutdown = threading.Event()
    shutdown.set()
    return shutdown


def test_clean_shutdown(fake_runtime):
    code = cli.main(["--config", "gateway.json", "--scheduling", "concurrent"],
                    runtime=fake_runtime, shutdown=_set_shutdown())
    assert code == cli.EXIT_OK
    fake_runtime.init.assert_called_once_with("gateway.json", scheduling="concurrent")
    fake_runtime.start_loop.assert_called_once()
    fake_runtime.cleanup.assert_called_once()


def test_config_from_environment(monkeypatch, fake_runtime):
    monkeypatch.setenv("GATEWAY_CONFIG", "/etc/gateway.json")
    monkeypatch.setenv("GATEWAY_SCHEDULING", "sequential")
    assert cli.main([], runtime=fake_runtime, shutdown=_set_shutdown()) == cli.EXIT_OK
    fake_runtime.init.assert_called_once_with("/etc/gateway.json", scheduling="sequential")


def test_log_level_argument(isolated, fake_runtime):
    cli.main(["--config", "g.json", "--log-level", "debug"], runtime=fake_runtime,
             shutdown=_set_shutdown())
    assert isolated.call_args.kwargs["level"] == "DEBUG"


def test_missing_config_path(fake_runtime):
    assert cli.main([], runtime=fake_runtime, shutdown=_set_shutdown()) == cli.EXIT_CONFIG_ERROR
    fake_runtime.init.assert_not_called()


def test_init_failure_exits_non_zero(fake_runtime):
    fake_runtime.init.return_value = False
    code = cli.main(["--config", "bad.json"], runtime=fake_runtime, shutdown=_set_shutdown())
    assert code == cli.EXIT_CONFIG_ERROR
    fake_runtime.start_loop.assert_not_called()
    fake_runtime.cleanup.assert_called_once()


def test_invalid_environment_exits_non_zero(monkeypatch, fake_runtime):
    monkeypatch.setenv("GATEWAY_LOG_FORMAT", "xml")
    assert cli.main(["--config", "g.json"], runtime=fake_runtime) == cli.EXIT_CONFIG_ERROR


def test_signal_handler_sets_shutdown(monkeypatch, fake_runtime):
    handlers = {}
    monkeypatch.setattr(f"{MODULE}.signal.signal", lambda signum, handler: handlers.update({signum: handler}))
    shutdown = threading.Event()

    def _start():
        handlers[cli.signal.SIGTERM](cli.signal.SIGTERM, None)
        return True

    fake_runtime.start_loop.side_effect = _start
    assert cli.main(["--config", "g.json"], runtime=fake_runtime, shutdown=shutdown) == cli.EXIT_OK
    assert shutdown.is_set()
    assert cli.signal.SIGINT in handlers


def test_unknown_scheduling_is_rejected():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--scheduling", "parallel"])
