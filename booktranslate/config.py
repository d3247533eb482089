from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from . import storage
from .html_parser import DEFAULT_ALLOW_TAGS, DEFAULT_BLACKLIST_TAGS
from .translator import DEFAULT_LANGUAGE, DEFAULT_MODEL, DEFAULT_TIMEOUT_SECONDS, OllamaConfig


PROVIDERS = ("ollama", "dummy")

# Environment variable -> config key
ENV_OVERRIDES = {
    "OLLAMA_HOST": "host",
    "OLLAMA_PORT": "port",
    "BOOKTRANSLATE_MODEL": "model",
}


@dataclass
class TranslateConfig:
    model: str = DEFAULT_MODEL
    language: str = DEFAULT_LANGUAGE
    tags: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOW_TAGS))
    blacklist: List[str] = field(default_factory=lambda: list(DEFAULT_BLACKLIST_TAGS))
    passes: int = 1
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    host: str = "localhost"
    port: int = 11434
    provider: str = "ollama"
    logs_dir: str = "logs"

    def validate(self) -> "TranslateConfig":
        if not isinstance(self.passes, int) or self.passes < 0:
            raise ValueError(f"passes must be a non-negative integer, got {self.passes!r}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds!r}")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")
        if self.provider not in PROVIDERS:
            raise ValueError(f"Unknown translation provider: {self.provider}")
        if not self.model.strip():
            raise ValueError("model must not be empty")
        if not self.language.strip():
            raise ValueError("language must not be empty")
        return self

    def ollama(self) -> OllamaConfig:
        return OllamaConfig(host=self.host, port=self.port, timeout_seconds=self.timeout_seconds)


_ALLOWED_KEYS = {f.name for f in fields(TranslateConfig)}


def _coerce(key: str, value: Any) -> Any:
    if key in ("tags", "blacklist"):
        if isinstance(value, str):
            value = [v for v in value.replace(",", " ").split() if v]
        return [str(v).lower() for v in value]
    if key in ("passes", "port"):
        # bool is an int subclass; floats would be truncated silently
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValueError(f"{key} must be an integer, got {value!r}")
        try:
            return int(value)
        except ValueError as exc:
            raise ValueError(f"{key} must be an integer, got {value!r}") from exc
    if key == "timeout_seconds":
        if isinstance(value, bool):
            raise ValueError(f"{key} must be a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{key} must be a number, got {value!r}") from exc
    return str(value)


def _merge(base: Dict[str, Any], override: Mapping[str, Any], source: str) -> Dict[str, Any]:
    extra = set(override.keys()) - _ALLOWED_KEYS
    if extra:
        raise ValueError(f"Unknown keys in {source}: {', '.join(sorted(extra))}")
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        merged[key] = _coerce(key, value)
    return merged


def _env_values(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for var, key in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if not raw:
            continue
        if key == "host" and ":" in raw.split("://")[-1]:
            # OLLAMA_HOST is commonly given as host:port
            host, _, port = raw.rpartition(":")
            values["host"] = host
            values.setdefault("port", port)
        else:
            values[key] = raw
    return values


def load_config(
    config_path: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> TranslateConfig:
    """Resolve defaults < config file < environment < CLI flags, then validate."""

    merged: Dict[str, Any] = {f.name: getattr(TranslateConfig(), f.name) for f in fields(TranslateConfig)}
    if config_path:
        data = storage.read_json(config_path)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object.")
        merged = _merge(merged, data, config_path)
    merged = _merge(merged, _env_values(os.environ if environ is None else environ), "environment")
    merged = _merge(merged, cli_overrides or {}, "command line")

    return TranslateConfig(**merged).validate()
