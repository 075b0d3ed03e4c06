"""
Configuration management for vidconv
"""

import yaml
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8765


class ToolsConfig(BaseModel):
    ffmpeg_path: str = "auto"
    ffprobe_path: str = "auto"


class ConversionConfig(BaseModel):
    temp_directory: Optional[str] = None  # Sidecar progress files; None = system temp
    max_concurrent_jobs: int = 2
    default_progress_mode: str = "pipe"  # "pipe" or "sidecar"


class ProgressConfig(BaseModel):
    emit_interval_ms: int = 150
    rate_window_seconds: float = 10.0
    sidecar_poll_interval_ms: int = 250
    settle_grace_seconds: float = 0.5  # Wait for readers after exit
    diagnostic_tail_lines: int = 100


class CancellationConfig(BaseModel):
    grace_period_seconds: float = 2.0  # Before escalating to a forced kill


class HardwareConfig(BaseModel):
    fallback_to_software: bool = True
    nvenc_preset: str = "p4"
    qsv_preset: str = "medium"
    amf_quality: str = "balanced"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file: Optional[str] = None
    ffmpeg_output: bool = False  # Echo unmatched ffmpeg stderr at debug level


class VidconvConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VIDCONV_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    cancellation: CancellationConfig = Field(default_factory=CancellationConfig)
    hardware: HardwareConfig = Field(default_factory=HardwareConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def find_config_file() -> Optional[Path]:
    """Find the configuration file in standard locations."""
    search_paths = [
        Path.cwd() / "vidconv.yaml",
        Path.cwd() / "vidconv.yml",
        Path.cwd() / "config" / "vidconv.yaml",
        Path.home() / ".config" / "vidconv" / "vidconv.yaml",
        Path("/etc/vidconv/vidconv.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config(config_path: Optional[str] = None) -> VidconvConfig:
    """Load configuration from YAML file or use defaults.

    Environment variables (``VIDCONV_PROGRESS__EMIT_INTERVAL_MS=200``) fill in
    anything the file does not set.
    """
    config_file = Path(config_path) if config_path else find_config_file()

    if config_file and config_file.exists():
        with open(config_file, "r") as f:
            yaml_data = yaml.safe_load(f) or {}
        return VidconvConfig(**yaml_data)

    return VidconvConfig()


# Global config instance
_config: Optional[VidconvConfig] = None


def get_config() -> VidconvConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: VidconvConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
