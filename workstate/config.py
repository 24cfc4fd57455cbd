"""Configuration loading for workstate (.workstate.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import yaml

CONFIG_FILENAME = ".workstate.yml"
DEFAULT_STORE_PATH = ".workstate/scores.json"

BUDGET_MODES = ("heuristics", "skip")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LLMConfig:
    """Model provider settings."""

    model: str = "openai/gpt-5.2-nano"
    base_url: str = "https://openrouter.ai/api/v1"
    api_key: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 2048
    request_timeout: float = 60.0


@dataclass
class HeuristicConfig:
    """Tunable constants of the rule-based path."""

    completion_threshold: float = 0.20
    blocker_threshold: float = 0.15
    activity_threshold: float = 0.10
    commitment_threshold: float = 0.05
    commitment_confidence_cap: float = 0.70
    title_multiplier: float = 1.2
    escalation_threshold: float = 0.6
    fallback_discount: float = 0.85
    max_confidence: float = 0.95


@dataclass
class RetryConfig:
    """Backoff settings around model calls."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


@dataclass
class PipelineConfig:
    """Background pipeline cadence and budget."""

    enabled: bool = True
    interval_minutes: int = 45
    daily_token_limit: int = 50_000
    staleness_threshold_days: float = 3
    batch_size: int = 10
    max_units_per_cycle: int = 50
    use_hybrid: bool = True
    budget_exhausted_mode: str = "heuristics"
    override_release_weight: float = 0.4


@dataclass
class WorkstateConfig:
    """Represents the settings defined in .workstate.yml."""

    root: Path
    store_path: Path = Path(DEFAULT_STORE_PATH)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    heuristics: HeuristicConfig = field(default_factory=HeuristicConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self) -> None:
        # Relative store paths resolve against the directory holding .workstate.yml.
        self.store_path = Path(self.store_path).expanduser()
        if not self.store_path.is_absolute():
            self.store_path = self.root / self.store_path


ENV_MODEL_KEYS = ("WORKSTATE_LLM_MODEL",)
ENV_BASE_URL_KEYS = ("WORKSTATE_LLM_BASE_URL",)
ENV_API_KEY_KEYS = ("WORKSTATE_API_KEY", "OPENROUTER_API_KEY")


def load_config(config_path: Path) -> WorkstateConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)

    store_value = _as_str(data.get("store_path")) or DEFAULT_STORE_PATH
    config = WorkstateConfig(root=root, store_path=Path(store_value))

    pipeline_data = _as_dict(data.get("pipeline"))
    if pipeline_data:
        pipeline = config.pipeline
        pipeline.enabled = _coalesce(_as_bool(pipeline_data.get("enabled")), pipeline.enabled)
        pipeline.interval_minutes = _coalesce(
            _as_int(pipeline_data.get("interval_minutes")), pipeline.interval_minutes
        )
        pipeline.daily_token_limit = _coalesce(
            _as_int(pipeline_data.get("daily_token_limit")), pipeline.daily_token_limit
        )
        pipeline.staleness_threshold_days = _coalesce(
            _as_float(pipeline_data.get("staleness_threshold_days")),
            pipeline.staleness_threshold_days,
        )
        pipeline.batch_size = _coalesce(_as_int(pipeline_data.get("batch_size")), pipeline.batch_size)
        pipeline.max_units_per_cycle = _coalesce(
            _as_int(pipeline_data.get("max_units_per_cycle")), pipeline.max_units_per_cycle
        )
        pipeline.use_hybrid = _coalesce(_as_bool(pipeline_data.get("use_hybrid")), pipeline.use_hybrid)
        pipeline.override_release_weight = _coalesce(
            _as_float(pipeline_data.get("override_release_weight")),
            pipeline.override_release_weight,
        )
        mode = _as_str(pipeline_data.get("budget_exhausted_mode"))
        if mode is not None:
            if mode.lower() not in BUDGET_MODES:
                raise ConfigError(
                    f"pipeline.budget_exhausted_mode must be one of {', '.join(BUDGET_MODES)}"
                )
            pipeline.budget_exhausted_mode = mode.lower()
        if not 1 <= pipeline.batch_size <= 10:
            raise ConfigError("pipeline.batch_size must be between 1 and 10")
        if pipeline.interval_minutes <= 0:
            raise ConfigError("pipeline.interval_minutes must be positive")

    llm_data = _as_dict(data.get("llm"))
    llm = config.llm
    if llm_data:
        llm.model = _as_str(llm_data.get("model")) or llm.model
        llm.base_url = _as_str(llm_data.get("base_url")) or llm.base_url
        llm.api_key = _as_str(llm_data.get("api_key"))
        llm.temperature = _coalesce(_as_float(llm_data.get("temperature")), llm.temperature)
        llm.max_tokens = _coalesce(_as_int(llm_data.get("max_tokens")), llm.max_tokens)
        llm.request_timeout = _coalesce(
            _as_float(llm_data.get("request_timeout")), llm.request_timeout
        )
    if "model" not in llm_data:
        llm.model = _first_env_value(ENV_MODEL_KEYS) or llm.model
    if "base_url" not in llm_data:
        llm.base_url = _first_env_value(ENV_BASE_URL_KEYS) or llm.base_url
    if llm.api_key is None:
        llm.api_key = _first_env_value(ENV_API_KEY_KEYS)

    heuristic_data = _as_dict(data.get("heuristics"))
    if heuristic_data:
        heuristics = config.heuristics
        for name in (
            "completion_threshold",
            "blocker_threshold",
            "activity_threshold",
            "commitment_threshold",
            "commitment_confidence_cap",
            "title_multiplier",
            "escalation_threshold",
            "fallback_discount",
            "max_confidence",
        ):
            value = _as_float(heuristic_data.get(name))
            if value is not None:
                setattr(heuristics, name, value)
        if not 0 < heuristics.max_confidence <= 1:
            raise ConfigError("heuristics.max_confidence must be in (0, 1]")

    retry_data = _as_dict(data.get("retry"))
    if retry_data:
        retry = config.retry
        retry.max_attempts = _coalesce(_as_int(retry_data.get("max_attempts")), retry.max_attempts)
        retry.base_delay = _coalesce(_as_float(retry_data.get("base_delay")), retry.base_delay)
        retry.max_delay = _coalesce(_as_float(retry_data.get("max_delay")), retry.max_delay)
        if retry.max_attempts < 1:
            raise ConfigError("retry.max_attempts must be at least 1")

    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.suffix not in {".yml", ".yaml"}:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _coalesce(value: Any, default: Any) -> Any:
    return default if value is None else value


def _first_env_value(keys: Sequence[str]) -> str | None:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return None


__all__ = [
    "BUDGET_MODES",
    "CONFIG_FILENAME",
    "DEFAULT_STORE_PATH",
    "ConfigError",
    "HeuristicConfig",
    "LLMConfig",
    "PipelineConfig",
    "RetryConfig",
    "WorkstateConfig",
    "load_config",
]
