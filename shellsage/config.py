"""
Configuration: named provider registry with project-level overrides.

Loading priority:
  1. Project dir .shellsage.yml
  2. Git root .shellsage.yml
  3. Global ~/.shellsage/config.yml

Config.load() is the single initialization point. The CLI calls it once
and hands the resulting object to everything that needs it.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

CONFIG_DIR = Path.home() / ".shellsage"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = ".shellsage.yml"

PROVIDER_KINDS = ("ollama", "openai_compat", "anthropic")

# Fallback credential variables when a provider names no api-key-env
DEFAULT_KEY_ENV = {
    "openai_compat": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Metadata and validation rules for one configuration key."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "bool"
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "active-provider": ConfigFieldSpec(
        key="active-provider",
        field_name="active_provider",
        description="Provider used when --provider is not given",
        value_type="str",
        default="ollama",
        validator=None,  # checked against configured providers
    ),
    "verbose": ConfigFieldSpec(
        key="verbose",
        field_name="verbose",
        description="Enable verbose debug output",
        value_type="bool",
        default=False,
        validator=_validate_bool,
    ),
    "stream": ConfigFieldSpec(
        key="stream",
        field_name="stream",
        description="Stream model output while explaining",
        value_type="bool",
        default=True,
        validator=_validate_bool,
    ),
    "request-timeout": ConfigFieldSpec(
        key="request-timeout",
        field_name="request_timeout",
        description="HTTP timeout for backend calls in seconds",
        value_type="int",
        default=120,
        validator=lambda v: _validate_int_range(v, 5, 900),
    ),
    "segment-max-tokens": ConfigFieldSpec(
        key="segment-max-tokens",
        field_name="segment_max_tokens",
        description="Output token budget for each explained segment",
        value_type="int",
        default=2048,
        validator=lambda v: _validate_int_range(v, 128, 32768),
    ),
    "synthesis-max-tokens": ConfigFieldSpec(
        key="synthesis-max-tokens",
        field_name="synthesis_max_tokens",
        description="Output token budget for the final synthesis",
        value_type="int",
        default=2048,
        validator=lambda v: _validate_int_range(v, 128, 32768),
    ),
    "command-max-tokens": ConfigFieldSpec(
        key="command-max-tokens",
        field_name="command_max_tokens",
        description="Output token budget for command generation",
        value_type="int",
        default=512,
        validator=lambda v: _validate_int_range(v, 32, 8192),
    ),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    if key not in CONFIG_FIELDS:
        return False, value, f"Unknown configuration key: {key}"

    spec = CONFIG_FIELDS[key]
    if spec.validator:
        return spec.validator(value)
    return True, str(value), ""


@dataclass
class ProviderConfig:
    """One named backend: which adapter to build and how to reach it."""
    name: str
    kind: str
    api_key: str = ""
    api_key_env: Optional[str] = None
    base_url: str = ""
    model: str = ""
    options: Dict[str, str] = field(default_factory=dict)

    def resolve_api_key(self) -> str:
        if self.api_key:
            return self.api_key
        env_var = self.api_key_env or DEFAULT_KEY_ENV.get(self.kind)
        if env_var:
            return os.environ.get(env_var, "")
        return ""

    def to_yaml(self) -> dict:
        entry: Dict[str, Any] = {"kind": self.kind, "model": self.model}
        if self.base_url:
            entry["base-url"] = self.base_url
        if self.api_key:
            entry["api-key"] = self.api_key
        if self.api_key_env:
            entry["api-key-env"] = self.api_key_env
        if self.options:
            entry["options"] = dict(self.options)
        return entry

    @classmethod
    def from_yaml(cls, name: str, data: dict) -> "ProviderConfig":
        raw_options = data.get("options") or {}
        options = {str(k): str(v) for k, v in raw_options.items()} if isinstance(raw_options, dict) else {}
        return cls(
            name=name,
            kind=str(data.get("kind") or "").strip().lower(),
            api_key=str(data.get("api-key") or ""),
            api_key_env=data.get("api-key-env"),
            base_url=str(data.get("base-url") or ""),
            model=str(data.get("model") or ""),
            options=options,
        )


@dataclass
class Config:
    active_provider: str = "ollama"
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    verbose: bool = False
    stream: bool = True
    request_timeout: int = 120
    segment_max_tokens: int = 2048
    synthesis_max_tokens: int = 2048
    command_max_tokens: int = 512
    project_root: Optional[str] = None
    _config_source: str = ""
    _overrides: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        git_root = cls._find_git_root(project_path)
        config_loaded = False
        for candidate in [
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ]:
            if candidate and candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                config_loaded = True
                break

        if not config_loaded:
            config._add_default_providers()
            config._config_source = str(CONFIG_FILE)
            config.save()

        config._apply_env()
        config.project_root = str(project_path)
        return config

    @classmethod
    def get_default_providers(cls) -> Dict[str, ProviderConfig]:
        return {
            "ollama": ProviderConfig(
                name="ollama", kind="ollama",
                base_url="http://127.0.0.1:11434", model="qwen2.5-coder:7b",
            ),
            "openai": ProviderConfig(
                name="openai", kind="openai_compat",
                base_url="https://api.openai.com/v1", model="gpt-4o-mini",
                api_key_env="OPENAI_API_KEY",
            ),
            "deepseek": ProviderConfig(
                name="deepseek", kind="openai_compat",
                base_url="https://api.deepseek.com/v1", model="deepseek-chat",
                api_key_env="DEEPSEEK_API_KEY",
            ),
            "claude": ProviderConfig(
                name="claude", kind="anthropic",
                base_url="https://api.anthropic.com", model="claude-sonnet-4-20250514",
                api_key_env="ANTHROPIC_API_KEY",
            ),
        }

    def _add_default_providers(self):
        self.providers = self.get_default_providers()
        self.active_provider = "ollama"

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config file {filepath}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {filepath} must contain a mapping")

        self.active_provider = str(data.get("active-provider", "ollama"))
        self.verbose = self._coerce_bool(data.get("verbose", False), default=False)
        self.stream = self._coerce_bool(data.get("stream", True), default=True)
        self.request_timeout = self._coerce_positive_int(
            data.get("request-timeout", 120), default=120, min_value=5, max_value=900
        )
        self.segment_max_tokens = self._coerce_positive_int(
            data.get("segment-max-tokens", 2048), default=2048, min_value=128, max_value=32768
        )
        self.synthesis_max_tokens = self._coerce_positive_int(
            data.get("synthesis-max-tokens", 2048), default=2048, min_value=128, max_value=32768
        )
        self.command_max_tokens = self._coerce_positive_int(
            data.get("command-max-tokens", 512), default=512, min_value=32, max_value=8192
        )

        self.providers = {}
        for name, entry in (data.get("providers") or {}).items():
            if isinstance(entry, dict):
                self.providers[str(name)] = ProviderConfig.from_yaml(str(name), entry)
        if not self.providers:
            self._add_default_providers()

    def _apply_env(self):
        env_map = {
            "SHELLSAGE_PROVIDER": ("active_provider", str),
            "SHELLSAGE_VERBOSE": ("verbose", lambda v: v.lower() in ("true", "1")),
            "SHELLSAGE_STREAM": ("stream", lambda v: v.lower() in ("true", "1")),
        }
        for env_var, (attr, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val:
                self.override(attr, conv(val))

    def override(self, field_name: str, value: Any):
        """Change a setting for this run only; save() keeps the file value."""
        self._overrides.setdefault(field_name, getattr(self, field_name))
        setattr(self, field_name, value)

    def _persisted(self, field_name: str) -> Any:
        return self._overrides.get(field_name, getattr(self, field_name))

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        target.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "active-provider": self._persisted("active_provider"),
            "verbose": self._persisted("verbose"),
            "stream": self._persisted("stream"),
            "request-timeout": self._persisted("request_timeout"),
            "segment-max-tokens": self._persisted("segment_max_tokens"),
            "synthesis-max-tokens": self._persisted("synthesis_max_tokens"),
            "command-max-tokens": self._persisted("command_max_tokens"),
            "providers": {name: p.to_yaml() for name, p in self.providers.items()},
        }
        with open(target, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self._config_source = str(target)

    def get_provider(self, name: Optional[str] = None) -> ProviderConfig:
        """Return the named provider (default: the active one)."""
        target = name or self.active_provider
        provider = self.providers.get(target)
        if provider is None:
            raise ConfigurationError(
                f"Provider '{target}' not configured.\n"
                f"Known providers: {', '.join(sorted(self.providers)) or '(none)'}"
            )
        return provider

    def summary(self) -> dict:
        p = self.providers.get(self.active_provider)
        return {
            "Active provider": self.active_provider,
            "Kind": p.kind if p else "(missing)",
            "Model": (p.model or "(not selected)") if p else "-",
            "Base URL": (p.base_url or "(default)") if p else "-",
            "API key": ("set" if p.resolve_api_key() else "not set") if p else "-",
            "Streaming": "ON" if self.stream else "OFF",
            "Request timeout": f"{self.request_timeout}s",
            "Segment tokens": self.segment_max_tokens,
            "Synthesis tokens": self.synthesis_max_tokens,
            "Command tokens": self.command_max_tokens,
            "Project": self.project_root,
            "Config": self._config_source or "(defaults)",
        }

    @staticmethod
    def _coerce_bool(value, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
        if isinstance(value, (int, float)):
            return bool(value)
        return default

    @staticmethod
    def _coerce_positive_int(value, default: int, min_value: int = 1, max_value: int = 100000) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        if parsed < min_value:
            return min_value
        if parsed > max_value:
            return max_value
        return parsed

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while current != current.parent:
            if (current / ".git").exists():
                return current
            current = current.parent
        return None

    def get_config_value(self, key: str) -> Any:
        if key not in CONFIG_FIELDS:
            return None
        spec = CONFIG_FIELDS[key]
        return getattr(self, spec.field_name, spec.default)

    def set_config_value(self, key: str, value: Any) -> tuple[bool, str]:
        """
        Set configuration value with validation and persist it.

        Returns:
            (success, error_message)
        """
        if key == "active-provider":
            if value not in self.providers:
                return False, f"Provider '{value}' not found. Known: {', '.join(sorted(self.providers))}"
            self.active_provider = value
            self._overrides.pop("active_provider", None)
            self.save()
            return True, ""

        is_valid, coerced_value, error_msg = validate_config_value(key, value)
        if not is_valid:
            return False, error_msg

        spec = CONFIG_FIELDS[key]
        setattr(self, spec.field_name, coerced_value)
        self._overrides.pop(spec.field_name, None)
        self.save()
        return True, ""

    def reset_config_value(self, key: str) -> tuple[bool, str]:
        if key not in CONFIG_FIELDS:
            return False, f"Unknown configuration key: {key}"
        spec = CONFIG_FIELDS[key]
        setattr(self, spec.field_name, spec.default)
        self._overrides.pop(spec.field_name, None)
        self.save()
        return True, ""

    def list_providers(self) -> List[Dict[str, Any]]:
        return [
            {"name": n, "active": n == self.active_provider, "kind": p.kind,
             "model": p.model or "-", "base_url": p.base_url or "-",
             "key": bool(p.resolve_api_key())}
            for n, p in self.providers.items()
        ]
