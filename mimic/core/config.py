"""
Configuration Management System
Handles all application settings through environment variables, .env and YAML

Every setting can be overridden with a MIMIC_-prefixed environment variable,
e.g. MIMIC_STORAGE_DIR or MIMIC_PROXY_PORT.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings  # Pydantic v2 import
import structlog

logger = structlog.get_logger()


_SETTINGS_CONFIG = {
    "env_prefix": "MIMIC_",
    "env_file": ".env",
    "env_file_encoding": "utf-8",
    "extra": "ignore"
}


class StorageConfig(BaseSettings):
    """Where mappings and their content live on disk"""

    # index.json plus one <id>.txt per mapping
    storage_dir: Path = Field(Path("data/mimic"))

    model_config = _SETTINGS_CONFIG


class ProxyConfig(BaseSettings):
    """MITM interception proxy configuration (mitmproxy)"""

    proxy_enabled: bool = Field(True)
    proxy_host: str = Field("127.0.0.1")
    proxy_port: int = Field(8080)

    # mitmproxy keeps its CA here
    ca_cert_dir: Path = Field(Path("data/certs"))

    # Verify upstream certificates when forwarding
    ssl_insecure: bool = Field(False)

    # Let the request reach upstream and swap the body in the response hook
    substitute_on_response: bool = Field(False)

    model_config = _SETTINGS_CONFIG


class HTTPProxyConfig(BaseSettings):
    """Plain HTTP forward proxy configuration (aiohttp)"""

    http_proxy_enabled: bool = Field(False)
    http_proxy_host: str = Field("127.0.0.1")
    http_proxy_port: int = Field(8081)

    forward_timeout_seconds: float = Field(30.0)
    max_body_size_mb: int = Field(50)

    @field_validator("forward_timeout_seconds", mode='after')
    @classmethod
    def validate_forward_timeout(cls, v):
        """A forward must always be bounded"""
        if v <= 0:
            raise ValueError("forward_timeout_seconds must be positive")
        return v

    model_config = _SETTINGS_CONFIG


class APIConfig(BaseSettings):
    """Control-plane API settings"""

    api_host: str = Field("127.0.0.1")
    api_port: int = Field(8000)
    cors_origins: List[str] = Field(
        default=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:9000",
        ]
    )

    model_config = _SETTINGS_CONFIG


class LoggingConfig(BaseSettings):
    """Log level and destination"""

    log_level: str = Field("INFO")
    log_dir: Path = Field(Path("logs"))

    @field_validator("log_level", mode='after')
    @classmethod
    def validate_log_level(cls, v):
        levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in levels:
            raise ValueError(f"Invalid log level. Choose from: {levels}")
        return v

    model_config = _SETTINGS_CONFIG


class ApplicationConfig:
    """
    Main configuration class that combines all config sections
    This is what the rest of the application will use
    """

    def __init__(self, config_file: Path = Path("config/default.yaml"), **overrides):
        self.storage = StorageConfig(**overrides.get("storage", {}))
        self.proxy = ProxyConfig(**overrides.get("proxy", {}))
        self.http_proxy = HTTPProxyConfig(**overrides.get("http_proxy", {}))
        self.api = APIConfig(**overrides.get("api", {}))
        self.logging = LoggingConfig(**overrides.get("logging", {}))

        # Load custom configuration from YAML if it exists
        self.custom_config = self._load_custom_config(config_file)
        self._apply_custom_config()

        # Ensure required directories exist
        self._ensure_directories()

    def _load_custom_config(self, config_file: Path) -> Dict[str, Any]:
        """Load user-defined configuration from YAML files"""
        if config_file.exists():
            with open(config_file, 'r') as f:
                return yaml.safe_load(f) or {}
        return {}

    def _apply_custom_config(self):
        """
        Overlay YAML sections onto the settings objects

        The YAML layout mirrors the attribute names, e.g.

            proxy:
              proxy_port: 9090
        """
        sections = {
            "storage": StorageConfig,
            "proxy": ProxyConfig,
            "http_proxy": HTTPProxyConfig,
            "api": APIConfig,
            "logging": LoggingConfig,
        }
        for name, settings_cls in sections.items():
            values = self.custom_config.get(name)
            if not values:
                continue
            current = getattr(self, name).model_dump()
            current.update(values)
            setattr(self, name, settings_cls(**current))
            logger.debug("Applied YAML overrides", section=name, keys=sorted(values))

    def _ensure_directories(self):
        """Ensure required directories exist for proxy and storage"""
        directories = [
            self.storage.storage_dir,
            self.proxy.ca_cert_dir,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

        logger.debug("Ensured required directories exist")
