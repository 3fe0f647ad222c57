"""
Pytest configuration and shared fixtures for rtail tests.

This module provides common fixtures used across multiple test files,
including a whole-file forward parse used as the reference for tail output.
"""

import pytest
import tempfile
import os
import sys
import json
from pathlib import Path

# Add the src directory to the path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rtail.tail_common import DEFAULT_CONFIG


def reference_lines(data: bytes, encoding='utf-8', strip_cr=True) -> list:
    """Every line of `data`, parsed front to back in one pass."""
    if not data:
        return []
    parts = data.split(b"\n")
    terminated = [True] * (len(parts) - 1) + [False]
    if parts[-1] == b"":
        parts.pop()
        terminated.pop()
    lines = []
    for raw, has_lf in zip(parts, terminated):
        if strip_cr and has_lf and raw.endswith(b"\r"):
            raw = raw[:-1]
        lines.append(raw.decode(encoding, errors='replace'))
    return lines


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config():
    """Default configuration with a tiny window so tests cross many boundaries."""
    config = dict(DEFAULT_CONFIG)
    config['WINDOW_SIZE_BYTES'] = 8
    config['POLL_INTERVAL_MS'] = 0
    return config


@pytest.fixture
def make_file(temp_dir):
    """Factory writing raw bytes (or text) to a file in temp_dir."""
    def _make(content, name="test.log"):
        path = temp_dir / name
        if isinstance(content, str):
            content = content.encode('utf-8')
        path.write_bytes(content)
        return path
    return _make


@pytest.fixture
def sample_settings_file(temp_dir, monkeypatch):
    """Create a settings.json with two profiles and point RTAIL_SETTINGS at it."""
    settings = {
        "Profiles": {
            "SYSLOG": {
                "WINDOW_SIZE_BYTES": 65536,
                "POLL_INTERVAL_MS": 250,
                "ENCODING": "latin-1",
                "ROTATE_FROM": "end"
            },
            "Strict": {
                "MALFORMED_LINE_POLICY": "FAIL_FAST",
                "LINE_TERMINATOR_POLICY": "LF"
            }
        }
    }
    settings_path = temp_dir / "settings.json"
    with open(settings_path, 'w') as f:
        json.dump(settings, f, indent=2)
    monkeypatch.setenv("RTAIL_SETTINGS", str(settings_path))
    yield settings_path
