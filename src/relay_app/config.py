"""
Relay configuration.

Everything is read once at startup from environment variables (after the
.env file has been loaded). The model catalog can also come from a YAML
file named by MODELS_CONFIG.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml

from relay_core.credential_pool import RotationMode
from relay_core.timeout_config import TimeoutConfig
from relay_core.upstream_client import DEFAULT_API_URL, DEFAULT_REFERER, DEFAULT_TITLE

from .config_exceptions import ConfigLoadError, ConfigValidationError

logger = logging.getLogger(__name__)


@dataclass
class ModelEntry:
    id: str
    name: str


DEFAULT_MODELS = [
    ModelEntry("z-ai/glm-4.5-air:free", "Z.AI: GLM 4.5 Air"),
    ModelEntry("tngtech/deepseek-r1t2-chimera:free", "DeepSeek R1T2 Chimera"),
    ModelEntry("deepseek/deepseek-chat-v3-0324:free", "DeepSeek Chat V3"),
    ModelEntry("qwen/qwen3-coder:free", "Qwen3 Coder"),
]


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_credentials(environ: Mapping[str, str]) -> List[str]:
    """
    Read the credential pool from the environment.

    OPENROUTER_API_KEYS (comma-separated) wins over OPENROUTER_API_KEY.
    Entries are trimmed and kept in order, duplicates and blanks included;
    a blank entry simply fails when its turn comes.
    """
    multi = environ.get("OPENROUTER_API_KEYS")
    if multi:
        return [key.strip() for key in multi.split(",")]
    single = environ.get("OPENROUTER_API_KEY")
    if single:
        return [single.strip()]
    return []


def _model_from_item(item: Any, source: str) -> ModelEntry:
    if isinstance(item, str) and item.strip():
        return ModelEntry(item.strip(), item.strip())
    if isinstance(item, dict) and isinstance(item.get("id"), str) and item["id"].strip():
        model_id = item["id"].strip()
        name = item.get("name")
        return ModelEntry(model_id, name if isinstance(name, str) and name else model_id)
    raise ConfigValidationError(f"Invalid model entry in {source}: {item!r}")


def load_models_config(path: str) -> List[ModelEntry]:
    """
    Load the model allow-list from a YAML file of the form:

        models:
          - id: qwen/qwen3-coder:free
            name: Qwen3 Coder
          - deepseek/deepseek-chat-v3-0324:free
    """
    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigLoadError(f"Failed to load models config from {config_path}: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("models"), list):
        raise ConfigValidationError(
            f"Models config {config_path} must contain a 'models' list"
        )

    models = [_model_from_item(item, str(config_path)) for item in data["models"]]
    if not models:
        raise ConfigValidationError(f"Models config {config_path} lists no models")

    logger.info(f"Loaded {len(models)} models from {config_path}")
    return models


@dataclass
class RelaySettings:
    credentials: List[str] = field(default_factory=list)
    models: List[ModelEntry] = field(default_factory=lambda: list(DEFAULT_MODELS))
    api_url: str = DEFAULT_API_URL
    referer: Optional[str] = DEFAULT_REFERER
    title: Optional[str] = DEFAULT_TITLE
    attempt_timeout: float = 30.0
    rotation_mode: RotationMode = RotationMode.SHARED
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    metrics_enabled: bool = True

    @property
    def allowed_models(self) -> List[str]:
        return [model.id for model in self.models]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelaySettings":
        env = os.environ if environ is None else environ

        models = list(DEFAULT_MODELS)
        if env.get("MODELS_CONFIG"):
            models = load_models_config(env["MODELS_CONFIG"])
        elif env.get("ALLOWED_MODELS"):
            models = [ModelEntry(m, m) for m in _split_csv(env["ALLOWED_MODELS"])]

        mode_value = env.get("CREDENTIAL_ROTATION_MODE", RotationMode.SHARED.value)
        try:
            rotation_mode = RotationMode(mode_value.strip().lower())
        except ValueError:
            raise ConfigValidationError(
                f"Invalid CREDENTIAL_ROTATION_MODE: {mode_value!r} (expected 'shared' or 'guarded')"
            )

        cors_origins = _split_csv(env.get("CORS_ORIGINS", "http://localhost:5173"))

        return cls(
            credentials=parse_credentials(env),
            models=models,
            api_url=env.get("UPSTREAM_API_URL", DEFAULT_API_URL),
            referer=env.get("UPSTREAM_REFERER", DEFAULT_REFERER),
            title=env.get("UPSTREAM_TITLE", DEFAULT_TITLE),
            attempt_timeout=TimeoutConfig.attempt(env),
            rotation_mode=rotation_mode,
            cors_origins=cors_origins,
            metrics_enabled=env.get("METRICS_ENABLED", "true").lower() == "true",
        )
