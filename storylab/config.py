# storylab/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import commentjson
from dotenv import load_dotenv

from storylab.errors import UnconfiguredError

logger = logging.getLogger("storylab_backend")

PROVIDER_OLLAMA = "ollama"
PROVIDER_OPENAI = "openai"

_MB = 1024 * 1024

# keys accepted in the optional JSON-with-comments tuning file
_TUNING_KEYS = {
    "IMAGE_BATCH_SIZE": ("image_batch_size", int),
    "MAX_FRAMES": ("max_frames", int),
    "MAX_RESPONSE_MB": ("max_response_bytes", lambda v: int(float(v) * _MB)),
    "LARGE_RESPONSE_WARNING_MB": ("large_response_warning_bytes", lambda v: int(float(v) * _MB)),
    "METADATA_DEPTH": ("metadata_depth", int),
    "IMAGE_SCALE": ("image_scale", float),
    "IMAGE_FORMAT": ("image_format", str),
    "PROBE_IMAGE_SIZES": ("probe_image_sizes", bool),
    "SIZE_PROBE_WORKERS": ("size_probe_workers", int),
    "PREVIEW_LIMIT": ("preview_limit", int),
}


@dataclass(frozen=True)
class StoryLabConfig:
    figma_token: Optional[str] = None
    figma_api_base: str = "https://api.figma.com/v1"
    figma_timeout: float = 30.0
    max_response_bytes: int = 50 * _MB
    large_response_warning_bytes: int = 10 * _MB
    metadata_depth: int = 2
    image_batch_size: int = 10
    image_format: str = "png"
    image_scale: float = 2.0
    max_frames: int = 50
    preview_limit: int = 12
    probe_image_sizes: bool = True
    size_probe_workers: int = 4

    llm_provider: str = PROVIDER_OLLAMA
    llm_base_url: str = "http://localhost:11434"
    llm_timeout: float = 120.0
    ollama_model: str = "llama3"
    ollama_vision_model: str = "llava"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    def require_figma_token(self) -> str:
        if not self.figma_token:
            raise UnconfiguredError(
                "Figma access token not configured. Please add FIGMA_ACCESS_TOKEN to your .env file",
                details="Create a .env file in your project root with: FIGMA_ACCESS_TOKEN=your_token_here",
            )
        return self.figma_token

    def with_overrides(self, **kwargs: Any) -> "StoryLabConfig":
        return replace(self, **kwargs)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _load_tuning_file(path: Path) -> Dict[str, Any]:
    """
    Load the optional tuning file (JSON with comments).
    Unknown keys are ignored with a warning; a missing file is an error.
    """
    if not path.exists():
        raise FileNotFoundError(f"StoryLab config file not found at '{path}'.")

    with path.open("r", encoding="utf-8") as f:
        data = commentjson.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"StoryLab config file '{path}' must contain a JSON object")

    overrides: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in _TUNING_KEYS:
            logger.warning(f"Ignoring unknown config key '{key}' in {path}")
            continue
        field_name, cast = _TUNING_KEYS[key]
        overrides[field_name] = cast(value)
    return overrides


def load_config(env: Optional[Mapping[str, str]] = None, *, use_dotenv: bool = True) -> StoryLabConfig:
    """
    Build the configuration from the environment (plus `.env` when present)
    and the optional STORYLAB_CONFIG_PATH tuning file.
    """
    if env is None:
        if use_dotenv:
            load_dotenv()
        env = os.environ

    defaults = StoryLabConfig()
    kwargs: Dict[str, Any] = {
        "figma_token": _clean(env.get("FIGMA_ACCESS_TOKEN")) or _clean(env.get("FIGMA_TOKEN")),
        "figma_api_base": _clean(env.get("FIGMA_API_BASE")) or defaults.figma_api_base,
        "llm_provider": (_clean(env.get("AI_PROVIDER")) or PROVIDER_OLLAMA).lower(),
        "llm_base_url": (_clean(env.get("OLLAMA_BASE_URL")) or defaults.llm_base_url).rstrip("/"),
        "ollama_model": _clean(env.get("OLLAMA_MODEL")) or defaults.ollama_model,
        "ollama_vision_model": _clean(env.get("OLLAMA_VISION_MODEL")) or defaults.ollama_vision_model,
        "openai_api_key": _clean(env.get("OPENAI_API_KEY")),
        "openai_model": _clean(env.get("OPENAI_MODEL")) or defaults.openai_model,
    }
    if _clean(env.get("FIGMA_TIMEOUT")):
        kwargs["figma_timeout"] = float(env["FIGMA_TIMEOUT"])
    if _clean(env.get("LLM_TIMEOUT")):
        kwargs["llm_timeout"] = float(env["LLM_TIMEOUT"])

    if kwargs["llm_provider"] not in (PROVIDER_OLLAMA, PROVIDER_OPENAI):
        raise ValueError(f"Unknown AI_PROVIDER: {kwargs['llm_provider']}")

    config_path = _clean(env.get("STORYLAB_CONFIG_PATH"))
    if config_path:
        kwargs.update(_load_tuning_file(Path(config_path)))

    return StoryLabConfig(**kwargs)
