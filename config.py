# =============================================================================
# NutriVision - Centralized Configuration
# =============================================================================
# Provides a single Config dataclass containing all tunable parameters for
# both the analysis server and the polling viewer. Parameters are overridable
# via environment variables with the NUTRIVISION_ prefix
# (e.g., NUTRIVISION_ORACLE_TIMEOUT_SECONDS=60).
# =============================================================================

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# Project root directory (where this file lives)
_PROJECT_ROOT = str(Path(__file__).parent.resolve())


@dataclass
class Config:
    """
    Centralized configuration for the NutriVision system.

    All fields can be overridden via environment variables prefixed with
    NUTRIVISION_.
    """

    # -- Networking --
    server_host: str = "0.0.0.0"
    server_port: int = 3000

    # -- Uploads --
    uploads_dir: str = field(
        default_factory=lambda: os.path.join(_PROJECT_ROOT, "uploads")
    )
    max_upload_bytes: int = 5 * 1024 * 1024

    # -- Oracle (OpenAI-compatible multimodal chat endpoint) --
    oracle_endpoint: str = "http://127.0.0.1:1234/v1/chat/completions"
    oracle_model: str = "gemma-3-27b-it"
    oracle_timeout_seconds: float = 120.0
    oracle_max_tokens: int = 512
    oracle_temperature: float = 0.2
    oracle_api_key: str = ""

    # -- Background analysis --
    max_concurrent_analyses: int = 4
    shutdown_grace_seconds: float = 2.0

    # -- Viewer --
    poll_interval_seconds: float = 2.0

    # -- Derived (computed post-init) --
    server_url: str = field(init=False)

    def __post_init__(self):
        """Apply environment variable overrides and compute derived fields."""
        self._apply_env_overrides()
        self.server_url = f"http://{self._client_host()}:{self.server_port}"

    def _client_host(self) -> str:
        # A wildcard bind address is not something a client can connect to
        if self.server_host in ("0.0.0.0", "::", ""):
            return "127.0.0.1"
        return self.server_host

    def _apply_env_overrides(self):
        """
        Override config fields from environment variables.

        Looks for NUTRIVISION_<FIELD_NAME_UPPERCASE> environment variables and
        applies them with appropriate type conversion.
        """
        field_types = {
            "server_host": str,
            "server_port": int,
            "uploads_dir": str,
            "max_upload_bytes": int,
            "oracle_endpoint": str,
            "oracle_model": str,
            "oracle_timeout_seconds": float,
            "oracle_max_tokens": int,
            "oracle_temperature": float,
            "oracle_api_key": str,
            "max_concurrent_analyses": int,
            "shutdown_grace_seconds": float,
            "poll_interval_seconds": float,
        }
        for field_name, field_type in field_types.items():
            env_key = f"NUTRIVISION_{field_name.upper()}"
            env_value = os.environ.get(env_key)
            if env_value is not None:
                setattr(self, field_name, field_type(env_value))


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Return the singleton Config instance, creating it on first call.

    Returns:
        Config: The global configuration object.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance
