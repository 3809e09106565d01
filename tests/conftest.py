"""
Pytest configuration and shared fixtures

Provides a fake relay executable and Conf factories pointing at it.
"""

import os
import stat
import sys
from pathlib import Path
from typing import Callable

import pytest

from nostrd import Conf


FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_RELAY_SCRIPT = FIXTURES_DIR / "fake_relay.py"


def make_executable(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_relay_binary(tmp_path: Path) -> str:
    """
    Executable wrapper around tests/fixtures/fake_relay.py

    Returns:
        Path to the wrapper script
    """
    wrapper = tmp_path / "fake-relay"
    make_executable(
        wrapper,
        f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_RELAY_SCRIPT}" "$@"\n',
    )
    return str(wrapper)


@pytest.fixture
def make_conf(fake_relay_binary: str) -> Callable[..., Conf]:
    """
    Factory for Conf objects running the fake relay

    Keyword arguments override the defaults; `mode` selects the
    fake relay behaviour.
    """
    def _make(mode: str = "serve", env=None, **overrides) -> Conf:
        child_env = {"RUST_LOG": "debug", "FAKE_RELAY_MODE": mode}
        child_env.update(env or {})
        options = {
            "binary": fake_relay_binary,
            "timeout": 10.0,
            "graceful_shutdown_timeout": 2.0,
            "environ": {},
            "env": child_env,
        }
        options.update(overrides)
        return Conf(**options)

    return _make


@pytest.fixture
def clean_env(monkeypatch):
    """Remove NOSTRD_EXE from the process environment"""
    monkeypatch.delenv("NOSTRD_EXE", raising=False)
    return os.environ


@pytest.fixture
def make_exe() -> Callable[[Path, str], Path]:
    """Factory writing an executable script"""
    return make_executable


@pytest.fixture
def failing_rmtree(monkeypatch):
    """Make workspace removal fail through the rmtree error hook"""
    def _rmtree(path, *args, onerror=None, onexc=None, **kwargs):
        exc = PermissionError(13, "Permission denied", str(path))
        if onexc is not None:
            onexc(os.rmdir, str(path), exc)
        elif onerror is not None:
            onerror(os.rmdir, str(path), (PermissionError, exc, None))

    monkeypatch.setattr("nostrd.workspace.shutil.rmtree", _rmtree)
    return monkeypatch
