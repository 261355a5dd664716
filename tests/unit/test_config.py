"""Tests for panelflow.core.config: configuration management.

Tests cover:
- Default values for configuration fields.
- Environment variable overrides via the PANELFLOW_ prefix.
- Automatic directory creation on initialisation.
- Pydantic validation constraints (port range, timeout, literals).
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from panelflow.core.config import PanelflowConfig


class TestConfigDefaults:
    """Verify that PanelflowConfig provides sensible defaults."""

    def test_default_model_is_pony(self, test_config: PanelflowConfig):
        """The default checkpoint should be detected as the pony family."""
        assert "pony" in test_config.default_model.lower()

    def test_default_page_size(self, test_config: PanelflowConfig):
        assert test_config.default_page_size == "comic_standard"

    def test_default_quality_preset(self, test_config: PanelflowConfig):
        assert test_config.default_quality_preset == "standard"

    def test_default_comfyui_url(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("PANELFLOW_COMFYUI_URL", raising=False)
        cfg = PanelflowConfig(
            output_dir=temp_dir / "out", data_dir=temp_dir / "data", _env_file=None
        )
        assert cfg.comfyui_url == "http://localhost:3001"

    def test_default_timeout(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("PANELFLOW_GENERATION_TIMEOUT", raising=False)
        cfg = PanelflowConfig(
            output_dir=temp_dir / "out", data_dir=temp_dir / "data", _env_file=None
        )
        assert cfg.generation_timeout == 300.0

    def test_identity_store_is_volatile_by_default(self, test_config: PanelflowConfig):
        assert test_config.identity_store_path is None


class TestConfigEnvironment:
    """Environment variables override defaults."""

    def test_env_overrides_default_model(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("PANELFLOW_DEFAULT_MODEL", "flux1-dev.safetensors")
        cfg = PanelflowConfig(
            output_dir=temp_dir / "out", data_dir=temp_dir / "data", _env_file=None
        )
        assert cfg.default_model == "flux1-dev.safetensors"

    def test_env_is_case_insensitive(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("panelflow_server_port", "8123")
        cfg = PanelflowConfig(
            output_dir=temp_dir / "out", data_dir=temp_dir / "data", _env_file=None
        )
        assert cfg.server_port == 8123


class TestConfigDirectories:
    """Directories are created on initialisation."""

    def test_creates_output_and_data_dirs(self, temp_dir: Path):
        PanelflowConfig(
            output_dir=temp_dir / "a" / "out", data_dir=temp_dir / "b" / "data", _env_file=None
        )
        assert (temp_dir / "a" / "out").is_dir()
        assert (temp_dir / "b" / "data").is_dir()

    def test_creates_identity_store_parent(self, temp_dir: Path):
        PanelflowConfig(
            output_dir=temp_dir / "out",
            data_dir=temp_dir / "data",
            identity_store_path=temp_dir / "ids" / "identities.json",
            _env_file=None,
        )
        assert (temp_dir / "ids").is_dir()

    def test_store_paths_live_in_data_dir(self, test_config: PanelflowConfig):
        assert test_config.panels_db.parent == test_config.data_dir
        assert test_config.images_db.name == "images.json"


class TestConfigValidation:
    """Pydantic constraints reject bad values."""

    def test_port_below_range(self, temp_dir: Path):
        with pytest.raises(ValidationError):
            PanelflowConfig(
                output_dir=temp_dir / "out", data_dir=temp_dir / "data",
                server_port=80, _env_file=None,
            )

    def test_timeout_must_be_positive(self, temp_dir: Path):
        with pytest.raises(ValidationError):
            PanelflowConfig(
                output_dir=temp_dir / "out", data_dir=temp_dir / "data",
                generation_timeout=0, _env_file=None,
            )

    def test_unknown_quality_preset(self, temp_dir: Path):
        with pytest.raises(ValidationError):
            PanelflowConfig(
                output_dir=temp_dir / "out", data_dir=temp_dir / "data",
                default_quality_preset="extreme", _env_file=None,
            )
