import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import ConfigError
from .llm import DEFAULT_REQUEST_TIMEOUT
from .models import PROMPT_VERSION

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ["generation_config", "verification_config"]
OPTIONAL_SECTIONS = ["analyzer_config", "concurrency_config"]

DEFAULT_GENERATION_MODEL = "qwen/qwen3-32b"
DEFAULT_VERIFICATION_MODEL = "moonshotai/kimi-k2-instruct-0905"
# qwen3 reasons by default; this prefix switches it off
QWEN_NO_THINK = "/no_think"

DEFAULT_LOCKED_POSITION_PATH = os.path.join("~", ".tone_fluent", "locked_position.json")


@dataclass
class ToneFluentConfig:
    generation_config: Dict[str, Any]
    verification_config: Dict[str, Any]
    analyzer_config: Dict[str, Any] = field(default_factory=dict)
    concurrency_config: Dict[str, int] = field(default_factory=dict)
    prompt_version: str = PROMPT_VERSION
    locked_position_path: str = DEFAULT_LOCKED_POSITION_PATH

    @property
    def generation_workers(self) -> int:
        return int(self.concurrency_config.get("generation", 2))

    @property
    def verification_workers(self) -> int:
        return int(self.concurrency_config.get("verification", 2))


def _llm_defaults(section: Dict[str, Any], default_model: str) -> Dict[str, Any]:
    config = dict(section)
    config.setdefault("provider", "proxy" if os.getenv("TONE_FLUENT_PROXY_URL") else "openai")
    config.setdefault("model", default_model)
    provider = config["provider"]
    if provider != "mock":
        config.setdefault("timeout", DEFAULT_REQUEST_TIMEOUT)
    if provider == "openai":
        config.setdefault("api_key", os.getenv("OPENAI_API_KEY"))
        config.setdefault("base_url", os.getenv("OPENAI_BASE_URL"))
    elif provider == "proxy":
        config.setdefault("base_url", os.getenv("TONE_FLUENT_PROXY_URL"))
    if "system_prefix" not in config and config["model"].startswith("qwen/qwen3"):
        config["system_prefix"] = QWEN_NO_THINK
    return config


def build_config(config_data: Dict[str, Any]) -> ToneFluentConfig:
    missing_keys = [key for key in REQUIRED_SECTIONS if key not in config_data]
    if missing_keys:
        raise ConfigError(f"Invalid configuration. Missing required keys: {', '.join(missing_keys)}")

    for key in REQUIRED_SECTIONS + OPTIONAL_SECTIONS:
        if key in config_data and not isinstance(config_data[key], dict):
            raise ConfigError(f"Invalid configuration. '{key}' must be a dictionary.")

    concurrency = config_data.get("concurrency_config", {})
    for name, value in concurrency.items():
        if not isinstance(value, int) or value < 1:
            raise ConfigError(f"Invalid configuration. concurrency_config.{name} must be a positive integer.")

    analyzer = dict(config_data.get("analyzer_config", {}))
    analyzer.setdefault("url", os.getenv("TONE_FLUENT_ANALYZER_URL"))

    return ToneFluentConfig(
        generation_config=_llm_defaults(config_data["generation_config"], DEFAULT_GENERATION_MODEL),
        verification_config=_llm_defaults(config_data["verification_config"], DEFAULT_VERIFICATION_MODEL),
        analyzer_config=analyzer,
        concurrency_config=concurrency,
        prompt_version=str(config_data.get("prompt_version") or PROMPT_VERSION),
        locked_position_path=config_data.get("locked_position_path") or DEFAULT_LOCKED_POSITION_PATH,
    )


def load_config(path: str) -> ToneFluentConfig:
    logger.info(f"Loading configuration from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse JSON config file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {e}") from e
    if not isinstance(config_data, dict):
        raise ConfigError("Invalid configuration. The top level must be a JSON object.")
    return build_config(config_data)


def default_config(provider: Optional[str] = None) -> ToneFluentConfig:
    """Configuration from the environment alone (or a fixed provider, e.g. 'mock')."""
    section = {"provider": provider} if provider else {}
    return build_config({"generation_config": dict(section), "verification_config": dict(section)})
