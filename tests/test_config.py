"""
Tests for the configuration module.

Run with: pytest tests/test_config.py -v
"""

import os
import sys
import pytest
from pathlib import Path
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core import config as config_module
from core.config import (
    get_config,
    get_project_root,
    get_section,
    get_server_config,
    get_verification_config,
    load_config,
    resolve_path,
)


class TestLoadConfig:
    """Tests for loading config.yaml."""

    def test_project_config_has_sections(self):
        config = get_config(reload=True)
        for section in ("camera", "detection", "verification", "session", "storage", "api", "logging"):
            assert section in config

    def test_verification_defaults(self):
        verification = get_verification_config()
        assert verification["default_threshold"] == 50
        assert verification["min_threshold"] == 20
        assert verification["max_threshold"] == 100

    def test_load_custom_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("camera:\n  device_id: 2\n")
        assert load_config(str(path)) == {"camera": {"device_id": 2}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_missing_section(self):
        with pytest.raises(KeyError):
            get_section("does_not_exist")


class TestServerConfig:
    """Tests for get_server_config."""

    @pytest.mark.parametrize(
        "base_url,expected",
        [
            ("http://localhost:8000", {"host": "0.0.0.0", "port": 8000}),
            ("http://127.0.0.1:9001/", {"host": "127.0.0.1", "port": 9001}),
            ("http://backend", {"host": "0.0.0.0", "port": 8000}),
        ],
    )
    def test_parse_base_url(self, base_url, expected):
        with patch.object(config_module, "_config_instance", {"api": {"base_url": base_url}}):
            assert get_server_config() == expected


class TestResolvePath:
    """Tests for resolve_path."""

    def test_relative_to_project_root(self):
        assert resolve_path("storage/faces") == get_project_root() / "storage" / "faces"

    def test_absolute_unchanged(self, tmp_path):
        assert resolve_path(str(tmp_path)) == Path(tmp_path)
