"""Tests for the chromedriver lifecycle, with subprocess.Popen mocked."""

import subprocess
from unittest import mock

import pytest

from rsstygen.scraper.rendering_backend import RenderingBackend, RenderingBackendError


def make_backend(**kwargs) -> RenderingBackend:
    kwargs.setdefault("sleep", lambda seconds: None)
    return RenderingBackend(**kwargs)


def test_start_spawns_chromedriver_on_port(monkeypatch):
    monkeypatch.delenv("CHROMEDRIVER_PATH", raising=False)
    monkeypatch.delenv("CHROMEDRIVER_PORT", raising=False)
    slept = []

    with mock.patch("subprocess.Popen") as popen:
        popen.return_value.poll.return_value = None
        backend = make_backend(sleep=slept.append)
        backend.start()

    args, kwargs = popen.call_args
    assert args[0] == ["chromedriver", "--port=4444"]
    assert kwargs["stdout"] is subprocess.DEVNULL
    assert kwargs["stderr"] is subprocess.DEVNULL
    assert slept == [2.0]
    assert backend.base_url == "http://localhost:4444"


def test_port_and_path_from_env(monkeypatch):
    monkeypatch.setenv("CHROMEDRIVER_PATH", "/opt/chromedriver")
    monkeypatch.setenv("CHROMEDRIVER_PORT", "9515")

    backend = make_backend()

    assert backend.executable == "/opt/chromedriver"
    assert backend.base_url == "http://localhost:9515"


def test_invalid_port_env(monkeypatch):
    monkeypatch.setenv("CHROMEDRIVER_PORT", "abc")
    with pytest.raises(ValueError, match="CHROMEDRIVER_PORT"):
        make_backend()


def test_missing_executable_is_fatal():
    with mock.patch("subprocess.Popen", side_effect=FileNotFoundError("chromedriver")):
        with pytest.raises(RenderingBackendError):
            make_backend(executable="chromedriver").start()


def test_immediate_exit_is_fatal():
    with mock.patch("subprocess.Popen") as popen:
        popen.return_value.poll.return_value = 1
        backend = make_backend(executable="chromedriver")
        with pytest.raises(RenderingBackendError, match="exited"):
            backend.start()
    assert backend.process is None


def test_stop_terminates_process():
    with mock.patch("subprocess.Popen") as popen:
        process = popen.return_value
        process.poll.return_value = None
        backend = make_backend(executable="chromedriver")
        backend.start()
        backend.stop()

    process.terminate.assert_called_once()
    process.kill.assert_not_called()
    assert backend.process is None


def test_stop_kills_when_terminate_is_ignored():
    with mock.patch("subprocess.Popen") as popen:
        process = popen.return_value
        process.poll.return_value = None
        process.wait.side_effect = [subprocess.TimeoutExpired("chromedriver", 5), 0]
        backend = make_backend(executable="chromedriver")
        backend.start()
        backend.stop()

    process.kill.assert_called_once()


def test_stop_failure_is_reported_not_raised(caplog):
    with mock.patch("subprocess.Popen") as popen:
        process = popen.return_value
        process.poll.return_value = None
        process.terminate.side_effect = ProcessLookupError("no such process")
        backend = make_backend(executable="chromedriver")
        backend.start()
        backend.stop()

    assert "Failed to stop chromedriver" in caplog.text
    assert backend.process is None


def test_stop_without_start_is_noop():
    make_backend(executable="chromedriver").stop()
