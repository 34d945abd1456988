"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any

import yaml

from modelgate.errors import ConfigurationError
from modelgate.llm.types import ModelDescriptor, Vendor


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class HttpConfig:
    connect_timeout_seconds: float = 10.0
    request_timeout_seconds: float = 120.0
    max_retries: int = 3
    default_retry_after_seconds: float = 60.0


@dataclass
class PromptConfig:
    system: str = ""
    system_path: str = ""


@dataclass
class AnthropicConfig:
    version: str = "2023-06-01"
    max_tokens: int = 10_000


@dataclass
class CompletionConfig:
    enabled: bool = True
    timeout_seconds: float = 60.0
    allowed_tools: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class GatewayConfig:
    http: HttpConfig = field(default_factory=HttpConfig)
    prompts: PromptConfig = field(default_factory=PromptConfig)
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    models: list[ModelDescriptor] = field(default_factory=list)
    chat_model: str = ""
    completion_model: str = ""
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'http.max_retries')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def system_prompt(self) -> str:
        """The system prompt text; a configured file wins over inline text."""
        if self.prompts.system_path:
            p = Path(self.prompts.system_path).expanduser()
            return p.read_text(encoding="utf-8")
        return self.prompts.system

    def find_model(self, uid: str) -> ModelDescriptor | None:
        for m in self.models:
            if m.uid == uid:
                return m
        return None

    def to_dict(self, *, mask_keys: bool = True) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        for m, raw in zip(self.models, d["models"]):
            raw["vendor"] = m.vendor.value if m.vendor else None
            if mask_keys:
                raw["api_key"] = m.masked_key()
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


def parse_vendor(value: Any) -> Vendor | None:
    if value is None or value == "":
        return None
    try:
        return Vendor(str(value).lower())
    except ValueError:
        known = ", ".join(v.value for v in Vendor)
        raise ConfigurationError(
            f"Unknown vendor {value!r}",
            hint=f"Use one of: {known}",
        ) from None


def _build_model(raw: dict) -> ModelDescriptor:
    """Build a ``ModelDescriptor`` from a config entry.

    ``api_key_env`` names an environment variable holding the key and is
    used when ``api_key`` is absent.
    """
    missing = [k for k in ("uid", "api_url", "model_name") if not raw.get(k)]
    if missing:
        raise ConfigurationError(
            f"Model entry {raw!r} is missing: {', '.join(missing)}"
        )
    api_key = raw.get("api_key") or ""
    if not api_key and raw.get("api_key_env"):
        api_key = os.environ.get(raw["api_key_env"], "")
    return ModelDescriptor(
        uid=str(raw["uid"]),
        api_url=str(raw["api_url"]),
        api_key=str(api_key),
        model_name=str(raw["model_name"]),
        temperature=int(raw.get("temperature", 7)),
        vision=bool(raw.get("vision", False)),
        function_calling=bool(raw.get("function_calling", False)),
        vendor=parse_vendor(raw.get("vendor")),
    )


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "MODELGATE_CHAT_MODEL":           ("chat_model", str),
    "MODELGATE_COMPLETION_MODEL":     ("completion_model", str),
    "MODELGATE_CONNECT_TIMEOUT":      ("http.connect_timeout_seconds", float),
    "MODELGATE_REQUEST_TIMEOUT":      ("http.request_timeout_seconds", float),
    "MODELGATE_MAX_RETRIES":          ("http.max_retries", int),
    "MODELGATE_DEFAULT_RETRY_AFTER":  ("http.default_retry_after_seconds", float),
    "MODELGATE_SYSTEM_PROMPT":        ("prompts.system", str),
    "MODELGATE_SYSTEM_PROMPT_PATH":   ("prompts.system_path", str),
    "MODELGATE_ANTHROPIC_VERSION":    ("anthropic.version", str),
    "MODELGATE_ANTHROPIC_MAX_TOKENS": ("anthropic.max_tokens", int),
    "MODELGATE_COMPLETION_ENABLED":   ("completion.enabled", bool),
    "MODELGATE_COMPLETION_TIMEOUT":   ("completion.timeout_seconds", float),
    "MODELGATE_COMPLETION_TOOLS":     ("completion.allowed_tools", list),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> GatewayConfig:
    """
    Build a GatewayConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if not isinstance(file_data, dict):
                raise ConfigurationError(f"Config file {p} must contain a mapping")
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = raw.get("profiles", {}).get(profile)
        if profile_data is None:
            raise ConfigurationError(
                f"Unknown profile {profile!r}",
                hint=f"Known profiles: {sorted(raw.get('profiles', {}))}",
            )
        raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = GatewayConfig(
        http=_build_section(HttpConfig, raw.get("http", {})),
        prompts=_build_section(PromptConfig, raw.get("prompts", {})),
        anthropic=_build_section(AnthropicConfig, raw.get("anthropic", {})),
        completion=_build_section(CompletionConfig, raw.get("completion", {})),
        models=[_build_model(m) for m in raw.get("models", [])],
        chat_model=raw.get("chat_model", ""),
        completion_model=raw.get("completion_model", ""),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg
