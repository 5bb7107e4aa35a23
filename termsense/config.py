"""Configuration management for termsense."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


TERMSENSE_DIR = Path.home() / ".termsense"
CONFIG_FILE = TERMSENSE_DIR / "config.yaml"
USER_ASSISTANTS_FILE = TERMSENSE_DIR / "assistants.yaml"
LOG_DIR = TERMSENSE_DIR / "logs"

# Bundled assistant definitions shipped with the package
BUILTIN_ASSISTANTS_FILE = Path(__file__).parent / "data" / "assistants.yaml"


class BufferConfig(BaseModel):
    """Chunk buffer settings used for cwd extraction."""

    debounce_seconds: float = 0.15
    max_chars: int = 4096


class ActivityConfig(BaseModel):
    """Activity and output-type classification settings."""

    keystroke_max_len: int = 5  # chunks of 1..N chars are treated as typing echo
    burst_threshold_seconds: float = 0.25
    output_window_seconds: float = 1.0
    burst_cap: int = 100
    burst_intensity_step: int = 4
    plateau_intensity: int = 50
    plateau_step: int = 10
    fresh_intensity: int = 35
    typing_decay: float = 0.95
    typing_floor: int = 10
    activity_timeout_seconds: float = 3.0  # how long the unseen-activity flag stays up
    output_type_expiry_seconds: float = 3.0


class DecayConfig(BaseModel):
    """Decay sweeper settings."""

    silence_seconds: float = 1.5
    intensity_factor: float = 0.85
    burst_factor: float = 0.8
    snap_threshold: int = 3


class TimingConfig(BaseModel):
    """Assistant state machine timings. Assistants may override these."""

    spinner_idle_timeout: float = 5.0
    idle_timeout: float = 30.0
    state_debounce: float = 0.5


class DetectionConfig(BaseModel):
    """Assistant detection settings."""

    enable_assistant_detection: bool = True
    process_cwd_lookup: bool = False
    timing: TimingConfig = Field(default_factory=TimingConfig)


class GitConfig(BaseModel):
    """Git status trigger settings."""

    enabled: bool = True
    debounce_seconds: float = 0.5
    timeout_seconds: float = 5.0


class TermSenseConfig(BaseModel):
    """Root configuration model."""

    buffer: BufferConfig = Field(default_factory=BufferConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)
    decay: DecayConfig = Field(default_factory=DecayConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    git: GitConfig = Field(default_factory=GitConfig)


def ensure_dirs() -> None:
    """Create termsense directories if they don't exist."""
    TERMSENSE_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def load_config(path: Path | None = None) -> TermSenseConfig:
    """Load configuration from ~/.termsense/config.yaml, falling back to defaults."""
    path = path or CONFIG_FILE
    if path.exists():
        with open(path) as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
        return TermSenseConfig(**raw)
    return TermSenseConfig()


def save_default_config(path: Path | None = None) -> Path:
    """Write default config to ~/.termsense/config.yaml."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    config = TermSenseConfig()
    with open(path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)
    return path


def load_yaml(path: Path) -> dict[str, Any]:
    """Safely load a YAML file, returning empty dict when it is missing or empty."""
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
