"""Load settings.yaml into typed dataclasses."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

DEFAULT_POSITIVE_TERMS = ("better", "best", "good", "excellent", "recommend", "prefer", "advantage")
DEFAULT_NEGATIVE_TERMS = ("worse", "worst", "bad", "avoid", "disadvantage", "problem", "issue")


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    label: str = ""
    icon: str = ""
    color: str = ""


@dataclass
class OptionsConfig:
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float | None = None


@dataclass(frozen=True)
class StanceConfig:
    """Tunables for the lexical disagreement heuristic."""

    window: int = 100
    positive_terms: tuple[str, ...] = DEFAULT_POSITIVE_TERMS
    negative_terms: tuple[str, ...] = DEFAULT_NEGATIVE_TERMS
    max_results: int = 5
    min_word_length: int = 4


@dataclass
class DefaultsConfig:
    output_dir: Path
    data_dir: Path
    selected_models: list[str] = field(default_factory=list)
    stream: bool = True
    history_limit: int = 50


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    options: OptionsConfig = field(default_factory=OptionsConfig)
    disagreement: StanceConfig = field(default_factory=StanceConfig)


def _load_stance_config(raw: Mapping | None) -> StanceConfig:
    if not raw:
        return StanceConfig()
    return StanceConfig(
        window=int(raw.get("window", 100)),
        positive_terms=tuple(str(t).lower() for t in raw.get("positive_terms", DEFAULT_POSITIVE_TERMS)),
        negative_terms=tuple(str(t).lower() for t in raw.get("negative_terms", DEFAULT_NEGATIVE_TERMS)),
        max_results=int(raw.get("max_results", 5)),
        min_word_length=int(raw.get("min_word_length", 4)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing. Credentials are not
    checked here; the provider registry decides what is configured.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]).expanduser(),
        data_dir=Path(defaults_raw["data_dir"]).expanduser(),
        selected_models=list(defaults_raw.get("selected_models", [])),
        stream=bool(defaults_raw.get("stream", True)),
        history_limit=int(defaults_raw.get("history_limit", 50)),
    )

    options_raw = raw.get("options", {}) or {}
    top_p = options_raw.get("top_p")
    options = OptionsConfig(
        temperature=float(options_raw.get("temperature", 0.7)),
        max_tokens=int(options_raw.get("max_tokens", 4096)),
        top_p=float(top_p) if top_p is not None else None,
    )

    models: dict[str, ModelConfig] = {}

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
            label=str(model_raw.get("label", provider_name)),
            icon=str(model_raw.get("icon", "")),
            color=str(model_raw.get("color", "")),
        )
        models[provider_name] = model_cfg
        logger.debug("Loaded model config: %s (%s, %s)", provider_name, model_cfg.sdk, model_cfg.model)

    return AppConfig(
        defaults=defaults,
        models=models,
        options=options,
        disagreement=_load_stance_config(raw.get("disagreement")),
    )
