"""Configuration management for Panelflow.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PANELFLOW_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PANELFLOW_* prefix)
2. .env file in the project root
3. Default values defined in PanelflowConfig

Example .env file:
    PANELFLOW_DEFAULT_MODEL=ponyDiffusionV6XL.safetensors
    PANELFLOW_COMFYUI_URL=http://gpu-box:3001
    PANELFLOW_GENERATION_TIMEOUT=600
    PANELFLOW_IDENTITY_STORE_PATH=data/identities.json

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time and
is what the API entry point uses. Library callers that want isolation (tests,
embedding in another service) construct their own ``PanelflowConfig`` and pass
it to :class:`~panelflow.core.engine.ConfigResolutionEngine` and
:class:`~panelflow.workflows.consistency.ConsistencyOrchestrator` explicitly.

Usage Example
-------------
    from panelflow.core.config import config

    print(config.default_model)
    print(config.comfyui_url)

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- output_dir: Generated panel images
- data_dir: JSON stores (panels, generated images, identities)

See Also
--------
- PanelflowConfig: Full configuration class documentation
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PanelflowConfig(BaseSettings):
    """Main configuration for Panelflow.

    Attributes
    ----------
    Generation Settings:
        default_model : str
            Checkpoint used when a request does not name one. Its family is
            detected from the file name.
        default_page_size : str
            Page-size preset used for slot sizing when a slot names none.
        default_quality_preset : str
            Quality preset used by the orchestrator when a caller passes none.

    Backend Settings:
        comfyui_url : str
            Base URL of the comfyui-mcp REST server
        generation_timeout : float
            Deadline in seconds for a single backend call

    Paths:
        output_dir : Path
            Directory generated panels are written to
        data_dir : Path
            Directory holding JSON stores
        identity_store_path : Path | None
            When set, identities are persisted to this JSON file and reloaded
            at start-up. When unset, identities live in memory only.

    Server Settings:
        server_host : str
            Bind address for the API server
        server_port : int
            Server port (1024-65535)
        log_level : str
            Root log level applied by the ``panelflow`` entry point

    Notes
    -----
    - All directories are created automatically if they don't exist
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PANELFLOW_",
        case_sensitive=False,
    )

    # Generation defaults
    default_model: str = Field(
        default="ponyDiffusionV6XL.safetensors",
        description="Checkpoint used when a request does not name one",
    )
    default_page_size: str = Field(
        default="comic_standard",
        description="Page-size preset used for slot sizing",
    )
    default_quality_preset: Literal["draft", "standard", "high", "ultra"] = Field(
        default="standard",
        description="Quality preset used when a caller passes none",
    )

    # Backend
    comfyui_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the comfyui-mcp REST server",
    )
    generation_timeout: float = Field(
        default=300.0,
        description="Deadline in seconds for a single backend call",
        gt=0,
    )

    # Paths
    output_dir: Path = Field(
        default=Path("output"),
        description="Directory generated panels are written to",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding JSON stores",
    )
    identity_store_path: Path | None = Field(
        default=None,
        description="JSON file for persisted identities (unset keeps them in memory)",
    )

    # Server
    server_host: str = Field(
        default="127.0.0.1",
        description="Bind address for the API server",
    )
    server_port: int = Field(
        default=3002,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.identity_store_path is not None:
            self.identity_store_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def panels_db(self) -> Path:
        """JSON file backing the panel store."""
        return self.data_dir / "panels.json"

    @property
    def images_db(self) -> Path:
        """JSON file backing the generated-image store."""
        return self.data_dir / "images.json"


# Global configuration instance used by the API entry point.
config = PanelflowConfig()
