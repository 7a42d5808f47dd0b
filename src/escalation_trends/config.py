from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator

FILL_MODE_ALIASES: Dict[str, str] = {"gpt": "external"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class PathsConfig(BaseModel):
    input: str
    reports: str


class ColumnsConfig(BaseModel):
    created: str = "Created"
    summary: str = "Summary"
    description: str = "Description"
    issue_type: str = "AI Issue Type"
    issue_type_confidence: str = "AI Issue Type Confidence"
    root_cause: str = "AI Root Cause"
    root_cause_confidence: str = "AI Root Cause Confidence"

    def classification_columns(self) -> List[str]:
        return [
            self.issue_type,
            self.issue_type_confidence,
            self.root_cause,
            self.root_cause_confidence,
        ]


class FillConfig(BaseModel):
    mode: Literal["mirror", "mock", "external"] = "mock"
    source_issue_field: str = ""
    source_cause_field: str = ""
    mirror_fallback_confidence: int = 90
    allowed_issue_types: List[str]
    allowed_root_causes: List[str]

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return FILL_MODE_ALIASES.get(lowered, lowered)
        return value

    @field_validator("allowed_issue_types", "allowed_root_causes")
    @classmethod
    def _require_labels(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("allowed label list must not be empty")
        return value


class FilterConfig(BaseModel):
    confidence_threshold: int = Field(60, ge=0, le=100)
    days_back: int = Field(30, ge=0)


class InsightsConfig(BaseModel):
    mock_if_no_credential: bool = True


class LLMConfig(BaseModel):
    provider: Literal["openai", "mock"] = "openai"
    model: str
    base_url: str
    env_key_var: str
    timeout_s: float
    max_output_tokens: int
    classify_temperature: float = 0.0
    insight_temperature: float = 0.5


class CacheConfig(BaseModel):
    enabled: bool
    dir: str


class AppConfig(BaseModel):
    paths: PathsConfig
    columns: ColumnsConfig
    fill: FillConfig
    filter: FilterConfig
    insights: InsightsConfig
    llm: LLMConfig
    cache: CacheConfig


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "configs" / "default.yaml"
ENV_TO_PATH: Dict[str, Tuple[str, ...]] = {
    "CONF_THRESHOLD": ("filter", "confidence_threshold"),
    "DAYS_BACK": ("filter", "days_back"),
    "FILL_MODE": ("fill", "mode"),
    "MOCK_IF_NO_API": ("insights", "mock_if_no_credential"),
    "ESC_CACHE_ENABLED": ("cache", "enabled"),
}
BOOL_ENV_VARS = {"MOCK_IF_NO_API", "ESC_CACHE_ENABLED"}


def load_config(
    default_path: Path,
    override_yaml_path_or_none: Optional[Path],
    env: Mapping[str, str],
    cli_overrides: Mapping[str, Any],
) -> AppConfig:
    data = _load_yaml(default_path)
    if override_yaml_path_or_none:
        data = _deep_merge(data, _load_yaml(override_yaml_path_or_none))

    data = _apply_env_overrides(data, env)
    data = _apply_cli_overrides(data, cli_overrides)

    return AppConfig.model_validate(data)


def read_credential(config: AppConfig, env: Mapping[str, str]) -> Optional[str]:
    """Return the model API key, or None when it is unset or blank."""
    value = env.get(config.llm.env_key_var, "")
    value = value.strip() if isinstance(value, str) else ""
    return value or None


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = path.read_text(encoding="utf-8")
    if not content.strip():
        return {}

    loaded = yaml.safe_load(content)
    if loaded is not None and not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return loaded or {}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(
    data: Dict[str, Any], env: Mapping[str, str]
) -> Dict[str, Any]:
    updated = json.loads(json.dumps(data))
    for var, path in ENV_TO_PATH.items():
        if var in env:
            value: Any = env[var]
            if var in BOOL_ENV_VARS:
                value = _coerce_env_bool(value)
            _assign_path(updated, path, value)
    return updated


def _coerce_env_bool(raw: str) -> Any:
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return raw


def _apply_cli_overrides(
    data: Dict[str, Any], overrides: Mapping[str, Any]
) -> Dict[str, Any]:
    updated = json.loads(json.dumps(data))
    for key, value in overrides.items():
        path = tuple(key.split(".")) if isinstance(key, str) else tuple(key)
        if not path:
            continue
        _assign_path(updated, path, value)
    return updated


def _assign_path(
    target: MutableMapping[str, Any], path: Tuple[str, ...], value: Any
) -> None:
    cursor: MutableMapping[str, Any] = target
    for part in path[:-1]:
        if part not in cursor or not isinstance(cursor[part], MutableMapping):
            cursor[part] = {}
        cursor = cursor[part]
    cursor[path[-1]] = value


__all__ = [
    "AppConfig",
    "ColumnsConfig",
    "DEFAULT_CONFIG_PATH",
    "FillConfig",
    "load_config",
    "read_credential",
]
