from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from llm.prompt import DEFAULT_PROMPT_VARIANT, PROMPT_VARIANTS, rules_prompt_for_variant


PROJECT_ROOT = Path(__file__).resolve().parent

EARLY_ENV_WARNINGS: List[str] = []

DEFAULT_LLM_MODEL = "gpt-4o"
DEFAULT_LLM_API_BASE_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_PORT = 3000
DEFAULT_REQUEST_TIMEOUT = 20.0
# Completion deadline as a share of the outer deadline; leaves the handler
# time to assemble a fallback.
COMPLETION_TIMEOUT_RATIO = 0.5
MIN_TIMEOUT = 0.1


def _parse_float_env(value: Optional[str], *, default: float) -> float:
    """Convert environment string to float with fallback and logging."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        EARLY_ENV_WARNINGS.append(
            f"Invalid float environment value '{value}'; using default {default:.2f}"
        )
        return default


def _parse_int_env(value: Optional[str], *, default: int) -> int:
    """Convert environment string to int with fallback and logging."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        EARLY_ENV_WARNINGS.append(
            f"Invalid int environment value '{value}'; using default {default}"
        )
        return default


def _clean_env(name: str) -> str:
    raw = os.getenv(name)
    return raw.strip() if raw else ""


def emit_early_env_warnings() -> None:
    """Log and clear any configuration warnings collected while loading."""
    global EARLY_ENV_WARNINGS
    for msg in EARLY_ENV_WARNINGS:
        logging.warning(msg)
    EARLY_ENV_WARNINGS = []


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def load_environment(dotenv_path: Optional[Path] = None) -> None:
    """Load ``.env`` without overriding variables already set in the process."""
    path = dotenv_path or PROJECT_ROOT / ".env"
    if path.exists():
        load_dotenv(path, override=False)
    else:
        load_dotenv(override=False)


def _load_llm_api_key() -> str:
    """Resolve the provider key: LLM_API_KEY first, then OPENAI_API_KEY."""
    return _clean_env("LLM_API_KEY") or _clean_env("OPENAI_API_KEY")


def _load_llm_api_base_url() -> str:
    return _clean_env("LLM_API_BASE_URL") or DEFAULT_LLM_API_BASE_URL


def _load_llm_api_type() -> str:
    """Resolve LLM API type based on environment configuration."""
    value = _clean_env("LLM_API_TYPE").lower()
    if value:
        return value
    if _clean_env("LLM_API_BASE_URL"):
        return "custom"
    return "openai"


def _load_llm_model_name(default_model: str = DEFAULT_LLM_MODEL) -> str:
    return _clean_env("BRIDGE_LLM_MODEL") or default_model


def _load_timeouts() -> Tuple[float, float]:
    """Resolve (outer deadline, completion deadline) in seconds.

    The completion deadline defaults to half the outer one and is always
    kept strictly below it.
    """
    request_timeout = _parse_float_env(
        os.getenv("BRIDGE_REQUEST_TIMEOUT"),
        default=DEFAULT_REQUEST_TIMEOUT,
    )
    if request_timeout < MIN_TIMEOUT:
        EARLY_ENV_WARNINGS.append(
            f"BRIDGE_REQUEST_TIMEOUT {request_timeout} is too small; using default {DEFAULT_REQUEST_TIMEOUT:.2f}"
        )
        request_timeout = DEFAULT_REQUEST_TIMEOUT

    default_completion = request_timeout * COMPLETION_TIMEOUT_RATIO
    completion_timeout = _parse_float_env(
        os.getenv("BRIDGE_COMPLETION_TIMEOUT"),
        default=default_completion,
    )
    if completion_timeout <= 0 or completion_timeout >= request_timeout:
        EARLY_ENV_WARNINGS.append(
            f"BRIDGE_COMPLETION_TIMEOUT {completion_timeout} must be below the request timeout "
            f"{request_timeout}; using {default_completion:.2f}"
        )
        completion_timeout = default_completion
    return request_timeout, completion_timeout


def load_system_prompt_from_env(
    base_dir: Path,
    default_prompt: str,
) -> Tuple[str, Dict[str, Any]]:
    """Load system prompt content and metadata from env or file.

    BRIDGE_SYSTEM_PROMPT_FILE wins over BRIDGE_SYSTEM_PROMPT; both fall
    back to ``default_prompt``.
    """
    prompt_file = os.getenv("BRIDGE_SYSTEM_PROMPT_FILE")
    if prompt_file:
        path = Path(prompt_file).expanduser()
        if not path.is_absolute():
            path = (base_dir / path).resolve()
        try:
            if path.exists():
                return path.read_text(encoding="utf-8").strip(), {"type": "file", "path": str(path)}
            EARLY_ENV_WARNINGS.append(
                f"System prompt file '{path}' not found; using default prompt."
            )
        except OSError as exc:
            EARLY_ENV_WARNINGS.append(
                f"Failed to read system prompt file '{path}': {exc}; using default prompt."
            )

    prompt_env = os.getenv("BRIDGE_SYSTEM_PROMPT")
    if prompt_env and prompt_env.strip():
        return prompt_env.strip(), {"type": "env"}

    return default_prompt, {"type": "default"}


@dataclass(frozen=True)
class BridgeConfig:
    """Process-wide settings, read once at startup and never mutated."""

    host: str
    port: int
    shared_secret: str
    llm_api_key: str
    llm_api_base_url: str
    llm_api_type: str
    llm_model: str
    llm_temperature: float
    llm_max_tokens: int
    request_timeout: float
    completion_timeout: float
    instrument: str
    prompt_variant: str
    system_prompt: str
    system_prompt_source: Dict[str, Any]

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key)

    def describe(self) -> Dict[str, Any]:
        """Settings for display, with secrets masked."""
        return {
            "host": self.host,
            "port": self.port,
            "shared_secret": _mask(self.shared_secret),
            "llm_api_key": _mask(self.llm_api_key),
            "llm_api_base_url": self.llm_api_base_url,
            "llm_api_type": self.llm_api_type,
            "llm_model": self.llm_model,
            "llm_temperature": self.llm_temperature,
            "llm_max_tokens": self.llm_max_tokens,
            "request_timeout": self.request_timeout,
            "completion_timeout": self.completion_timeout,
            "instrument": self.instrument,
            "prompt_variant": self.prompt_variant,
            "system_prompt_source": describe_system_prompt_source(self.system_prompt_source),
        }


def _mask(secret: str) -> str:
    if not secret:
        return "<not set>"
    if len(secret) <= 6:
        return "***"
    return f"{secret[:3]}***{secret[-2:]}"


def describe_system_prompt_source(source: Dict[str, Any]) -> str:
    kind = source.get("type")
    if kind == "file":
        return f"file:{source.get('path')}"
    if kind == "env":
        return "env:BRIDGE_SYSTEM_PROMPT"
    return "default"


def load_bridge_config_from_env() -> BridgeConfig:
    port = _parse_int_env(os.getenv("PORT"), default=DEFAULT_PORT)

    prompt_variant = _clean_env("BRIDGE_PROMPT_VARIANT").lower() or DEFAULT_PROMPT_VARIANT
    if prompt_variant not in PROMPT_VARIANTS:
        EARLY_ENV_WARNINGS.append(
            f"Unsupported BRIDGE_PROMPT_VARIANT '{prompt_variant}'; using '{DEFAULT_PROMPT_VARIANT}'."
        )
        prompt_variant = DEFAULT_PROMPT_VARIANT

    system_prompt, system_prompt_source = load_system_prompt_from_env(
        PROJECT_ROOT,
        rules_prompt_for_variant(prompt_variant),
    )
    request_timeout, completion_timeout = _load_timeouts()

    config = BridgeConfig(
        host=_clean_env("BRIDGE_HOST") or "0.0.0.0",
        port=port,
        shared_secret=_clean_env("BRIDGE_SECRET"),
        llm_api_key=_load_llm_api_key(),
        llm_api_base_url=_load_llm_api_base_url(),
        llm_api_type=_load_llm_api_type(),
        llm_model=_load_llm_model_name(),
        llm_temperature=_parse_float_env(os.getenv("BRIDGE_LLM_TEMPERATURE"), default=0.2),
        llm_max_tokens=_parse_int_env(os.getenv("BRIDGE_LLM_MAX_TOKENS"), default=300),
        request_timeout=request_timeout,
        completion_timeout=completion_timeout,
        instrument=_clean_env("BRIDGE_INSTRUMENT") or "XAUUSD",
        prompt_variant=prompt_variant,
        system_prompt=system_prompt,
        system_prompt_source=system_prompt_source,
    )

    if not config.llm_configured:
        EARLY_ENV_WARNINGS.append(
            "LLM_API_KEY (or OPENAI_API_KEY) not set; decision requests will fall back to HOLD."
        )
    if not config.shared_secret:
        EARLY_ENV_WARNINGS.append(
            "BRIDGE_SECRET not set; every decision request will be rejected as unauthorized."
        )
    return config
