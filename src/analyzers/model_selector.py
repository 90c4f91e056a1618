"""
Language- and stage-aware model selection.

Three language tiers (chinese, english, other) each carry a model per
pipeline stage: preliminary (cheap triage), analysis, reflection.
"""
import copy
import os
from typing import Dict, List, Literal, Mapping, Optional, Tuple

from src.utils.constants import ModelConstants


AnalysisStage = Literal["preliminary", "analysis", "reflection"]
LanguageTier = Literal["chinese", "english", "other"]

ModelConfig = Dict[str, Dict[str, str]]


class ModelSelectorError(Exception):
    """Raised for unknown tiers or stages."""

    pass


def get_language_tier(language: str) -> str:
    """Classify a language tag into a model tier by prefix"""
    language = (language or "").lower()
    if language.startswith("zh"):
        return "chinese"
    if language.startswith("en"):
        return "english"
    if any(language.startswith(code) for code in ModelConstants.ENGLISH_TIER_LANGUAGES):
        return "english"
    return "other"


def get_model_provider(model: str) -> str:
    """
    Classify a model name into its provider family.

    Args:
        model: Model identifier, e.g. "gpt-4o" or "deepseek-chat"

    Returns:
        One of openai, gemini, anthropic, deepseek, ollama, custom
    """
    if model.startswith("gpt") or model.startswith("o1"):
        return "openai"
    if "gemini" in model:
        return "gemini"
    if model.startswith("claude"):
        return "anthropic"
    if model.startswith("deepseek"):
        return "deepseek"
    if "llama" in model or "mistral" in model:
        return "ollama"
    return "custom"


def get_provider_api_key(provider: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    env = os.environ if env is None else env
    # Local runtimes and unknown providers share the custom credential
    variables = ModelConstants.PROVIDER_API_KEYS.get(provider, ModelConstants.PROVIDER_API_KEYS["custom"])
    for name in variables:
        value = env.get(name)
        if value:
            return value
    return None


def is_model_available(model: str, env: Optional[Mapping[str, str]] = None) -> bool:
    """True iff the credential for the model's provider is present"""
    return get_provider_api_key(get_model_provider(model), env) is not None


class ModelSelector:
    """Selects a model id for a (language, stage) pair"""

    def __init__(self, config: ModelConfig):
        self._config = copy.deepcopy(config)

    def select_model(self, language: str, stage: AnalysisStage) -> str:
        tier = get_language_tier(language)
        return self._config[tier][stage]

    def select_models_batch(self, pairs: List[Tuple[str, AnalysisStage]]) -> List[str]:
        return [self.select_model(language, stage) for language, stage in pairs]

    def get_config(self) -> ModelConfig:
        return copy.deepcopy(self._config)

    def get_language_config(self, language: str) -> Dict[str, str]:
        return dict(self._config[get_language_tier(language)])

    def update_config(self, updates: ModelConfig) -> None:
        for tier, stages in updates.items():
            self._config[tier] = dict(stages)

    def update_language_model(self, tier: LanguageTier, stage: AnalysisStage, model: str) -> None:
        if tier not in ModelConstants.LANGUAGE_TIERS:
            raise ModelSelectorError(f"Unknown language tier: {tier}")
        if stage not in ModelConstants.STAGES:
            raise ModelSelectorError(f"Unknown stage: {stage}")
        self._config[tier][stage] = model

    def validate_config(self) -> Tuple[bool, List[str]]:
        """
        Check that every (tier, stage) pair names a model.

        Returns:
            (valid, errors) with one error per empty or blank entry
        """
        errors = []
        for tier in ModelConstants.LANGUAGE_TIERS:
            for stage in ModelConstants.STAGES:
                model = self._config.get(tier, {}).get(stage)
                if not model or not model.strip():
                    errors.append(f"Missing model for {tier} - {stage}")
        return len(errors) == 0, errors

    def get_model_stats(self) -> Dict[str, Dict[str, List[str]]]:
        """Which tiers and stages each configured model serves"""
        stats: Dict[str, Dict[str, List[str]]] = {}
        for tier in ModelConstants.LANGUAGE_TIERS:
            for stage in ModelConstants.STAGES:
                model = self._config[tier][stage]
                entry = stats.setdefault(model, {"languages": [], "stages": []})
                if tier not in entry["languages"]:
                    entry["languages"].append(tier)
                if stage not in entry["stages"]:
                    entry["stages"].append(stage)
        return stats


def create_model_selector(env: Optional[Mapping[str, str]] = None) -> ModelSelector:
    """Build a selector from PRELIMINARY_MODEL_*, ANALYSIS_MODEL_* and REFLECTION_MODEL_*"""
    env = os.environ if env is None else env
    config: ModelConfig = {}
    for tier in ModelConstants.LANGUAGE_TIERS:
        suffix = ModelConstants.TIER_ENV_SUFFIX[tier]
        config[tier] = {
            stage: env.get(f"{prefix}_{suffix}") or ModelConstants.DEFAULT_MODELS[tier][stage]
            for stage, prefix in ModelConstants.STAGE_ENV_PREFIX.items()
        }
    return ModelSelector(config)


def create_custom_model_selector(overrides: ModelConfig) -> ModelSelector:
    config = copy.deepcopy(ModelConstants.DEFAULT_MODELS)
    for tier, stages in overrides.items():
        config.setdefault(tier, {}).update(stages)
    return ModelSelector(config)


def create_simple_model_selector(model: str) -> ModelSelector:
    """Same model for every tier and stage"""
    return ModelSelector({
        tier: {stage: model for stage in ModelConstants.STAGES}
        for tier in ModelConstants.LANGUAGE_TIERS
    })
