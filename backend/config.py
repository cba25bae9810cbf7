"""
Runtime Configuration for History Chat.

Provides a singleton RuntimeConfig class that allows adjustment of pipeline
and polling parameters at runtime, without requiring service restart.

Usage:
    from config import runtime_config
    page_size = runtime_config.search_page_size
    runtime_config.update(quality_high_threshold=0.35)
"""

import json
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any
from threading import Lock

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_bool(key: str, default: str) -> bool:
    return os.environ.get(key, default).lower() == "true"


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # History / search service
    history_service_url: str = field(
        default_factory=lambda: _first_env(
            "HISTORY_SERVICE_URL",
            "SEARCH_SERVICE_URL",
            default="http://localhost:8090",
        ).rstrip("/")
    )
    history_service_timeout_s: float = field(
        default_factory=lambda: float(os.environ.get("HISTORY_SERVICE_TIMEOUT_S", "30"))
    )
    history_retry_max: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_RETRY_MAX", "3"))
    )  # Connection-level retries only

    # LLM server (OpenAI-compatible)
    llm_base_url: str = field(
        default_factory=lambda: os.environ.get("LLM_BASE_URL", "http://localhost:8081").rstrip("/")
    )
    llm_timeout: int = field(default_factory=lambda: int(os.environ.get("LLM_TIMEOUT", "180")))
    model_chat: str = field(
        default_factory=lambda: _first_env("LLM_CHAT_MODEL", default="Qwen3-8B-Q4_K_M.gguf")
    )
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7")))
    top_k: int = field(default_factory=lambda: int(os.environ.get("LLM_TOP_K", "3")))
    max_output_tokens: int = field(
        default_factory=lambda: int(os.environ.get("LLM_MAX_OUTPUT", "1024"))
    )
    keyword_temperature: float = field(
        default_factory=lambda: float(os.environ.get("KEYWORD_TEMPERATURE", "0.1"))
    )

    # Search
    search_enabled: bool = field(default_factory=lambda: _env_bool("SEARCH_ENABLED", "true"))
    search_mode: str = field(default_factory=lambda: os.environ.get("SEARCH_MODE", "hybrid-rerank"))
    search_page_size: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_PAGE_SIZE", "25"))
    )

    # Context assembly
    quality_high_threshold: float = field(
        default_factory=lambda: float(os.environ.get("QUALITY_HIGH_THRESHOLD", "0.3"))
    )  # First-record score at or above this is "high"
    context_max_records: int = field(
        default_factory=lambda: int(os.environ.get("CONTEXT_MAX_RECORDS", "3"))
    )
    context_excerpt_chars: int = field(
        default_factory=lambda: int(os.environ.get("CONTEXT_EXCERPT_CHARS", "200"))
    )
    link_list_size: int = field(default_factory=lambda: int(os.environ.get("LINK_LIST_SIZE", "5")))
    chat_turns_max: int = field(default_factory=lambda: int(os.environ.get("CHAT_TURNS_MAX", "10")))
    chat_turns_max_chars: int = field(
        default_factory=lambda: int(os.environ.get("CHAT_TURNS_MAX_CHARS", "2000"))
    )

    # Chat history persistence
    history_load_limit: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_LOAD_LIMIT", "10"))
    )
    history_max_stored: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_MAX_STORED", "50"))
    )
    dedupe_window_s: float = field(
        default_factory=lambda: float(os.environ.get("DEDUPE_WINDOW_S", "5"))
    )

    # Redis chat store
    redis_url: str = field(default_factory=lambda: os.environ.get("REDIS_URL", "redis://localhost:6379/0"))
    redis_enabled: bool = field(default_factory=lambda: _env_bool("REDIS_ENABLED", "true"))

    # Model readiness polling
    readiness_initial_delay_s: float = field(
        default_factory=lambda: float(os.environ.get("READINESS_INITIAL_DELAY_S", "1.0"))
    )
    readiness_poll_interval_s: float = field(
        default_factory=lambda: float(os.environ.get("READINESS_POLL_INTERVAL_S", "2.0"))
    )
    readiness_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("READINESS_MAX_ATTEMPTS", "60"))
    )
    optimistic_ready_after_s: float = field(
        default_factory=lambda: float(os.environ.get("OPTIMISTIC_READY_AFTER_S", "3.0"))
    )  # Hide the "downloading" indicator after this, regardless of progress

    # Remote model warm-up
    enable_remote_warm: bool = field(default_factory=lambda: _env_bool("ENABLE_REMOTE_WARM", "false"))
    remote_warm_poll_interval_s: float = field(
        default_factory=lambda: float(os.environ.get("REMOTE_WARM_POLL_INTERVAL_S", "2.0"))
    )
    remote_warm_timeout_s: float = field(
        default_factory=lambda: float(os.environ.get("REMOTE_WARM_TIMEOUT_S", "120"))
    )

    # Processing gate
    disable_input_during_processing: bool = field(
        default_factory=lambda: _env_bool("DISABLE_INPUT_DURING_PROCESSING", "false")
    )
    gate_poll_interval_s: float = field(
        default_factory=lambda: float(os.environ.get("GATE_POLL_INTERVAL_S", "2.0"))
    )
    gate_settle_delay_s: float = field(
        default_factory=lambda: float(os.environ.get("GATE_SETTLE_DELAY_S", "1.0"))
    )
    gate_event_recheck_delay_s: float = field(
        default_factory=lambda: float(os.environ.get("GATE_EVENT_RECHECK_DELAY_S", "0.1"))
    )

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "temperature": (0.0, 2.0),
        "keyword_temperature": (0.0, 2.0),
        "top_k": (1, 200),
        "max_output_tokens": (64, 32768),
        "quality_high_threshold": (0.0, 1.0),
        "search_page_size": (1, 200),
        "context_max_records": (1, 20),
        "context_excerpt_chars": (20, 5000),
        "link_list_size": (0, 50),
        "chat_turns_max": (0, 100),
        "chat_turns_max_chars": (0, 100000),
        "history_load_limit": (1, 500),
        "history_max_stored": (1, 5000),
        "readiness_max_attempts": (1, 10000),
    })

    # User-facing preferences (persisted across restarts)
    _PREF_KEYS = ("enable_remote_warm", "disable_input_during_processing")

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., search_page_size=50)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_"):
                    ignored.append(key)
                    continue

                if hasattr(self, key):
                    if key.endswith("_url") and isinstance(value, str):
                        cleaned = value.strip()
                        if key != "redis_url" and not cleaned.startswith(("http://", "https://")):
                            ignored.append(key)
                            logger.warning(f"Config rejected invalid URL: {key}={value!r}")
                            continue
                        value = cleaned.rstrip("/")

                    if key == "search_mode" and isinstance(value, str):
                        value = value.strip().lower()
                        if not value:
                            ignored.append(key)
                            continue

                    if key in self._VALIDATION_RANGES:
                        lo, hi = self._VALIDATION_RANGES[key]
                        if not (lo <= value <= hi):
                            ignored.append(key)
                            logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                            continue

                    old_value = getattr(self, key)
                    setattr(self, key, value)
                    updated.append(key)
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")
                else:
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored, "update_count": self._update_count}

    def get_session_params(self) -> Dict[str, Any]:
        """Sampling parameters for chat generation sessions."""
        return {
            "temperature": self.temperature,
            "top_k": self.top_k,
            "max_tokens": self.max_output_tokens,
        }

    def get_prefs(self) -> Dict[str, bool]:
        return {key: getattr(self, key) for key in self._PREF_KEYS}

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if not field_info.name.startswith("_"):
                result[field_info.name] = getattr(self, field_info.name)
        return result

    # Config persistence
    _overrides_path: Path = field(
        default_factory=lambda: Path(os.environ.get(
            "CONFIG_OVERRIDES_PATH", "data/config/config_overrides.json"
        )),
        repr=False, compare=False,
    )

    def save_overrides(self) -> None:
        """Save non-default values to persistent storage."""
        defaults = RuntimeConfig()
        overrides = {}

        # Connection fields stay env-only
        skip_fields = {"redis_url", "history_service_url", "llm_base_url"}

        current = self.to_dict()
        default_dict = defaults.to_dict()

        for key, value in current.items():
            if key in skip_fields:
                continue
            if value != default_dict.get(key):
                overrides[key] = value

        try:
            self._overrides_path.parent.mkdir(parents=True, exist_ok=True)
            self._overrides_path.write_text(
                json.dumps(overrides, indent=2, default=str),
                encoding="utf-8",
            )
            logger.info(f"Config overrides saved: {len(overrides)} values to {self._overrides_path}")
        except Exception as e:
            logger.error(f"Failed to save config overrides: {e}")

    def load_overrides(self) -> Dict[str, Any]:
        """Load overrides from persistent storage. Env vars take precedence."""
        if not self._overrides_path.exists():
            return {}

        try:
            overrides = json.loads(self._overrides_path.read_text(encoding="utf-8"))
            if not isinstance(overrides, dict):
                return {}

            # Only apply overrides for fields that still have their default value
            # (env vars would have already changed them from default)
            defaults = RuntimeConfig()
            applied = []

            with self._lock:
                for key, value in overrides.items():
                    if key.startswith("_") or not hasattr(self, key):
                        continue
                    current = getattr(self, key)
                    default = getattr(defaults, key)
                    if current == default and value != default:
                        field_type = type(default)
                        try:
                            typed_value = field_type(value)
                            setattr(self, key, typed_value)
                            applied.append(key)
                        except (ValueError, TypeError):
                            logger.warning(f"Config override type mismatch: {key}={value}")

            if applied:
                logger.info(f"Config overrides loaded: {', '.join(applied)}")
            return {"applied": applied, "total": len(overrides)}

        except Exception as e:
            logger.error(f"Failed to load config overrides: {e}")
            return {}


# Singleton instance
runtime_config = RuntimeConfig()

# Load persisted overrides on startup
runtime_config.load_overrides()


def get_config() -> RuntimeConfig:
    """Get the singleton config instance."""
    return runtime_config
