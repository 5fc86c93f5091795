"""Build the model catalog from environment-derived settings.

Every configured slot becomes a ``ChatOpenAI`` client (any OpenAI-compatible
endpoint) wrapped in ``LangChainLanguageModel``:

- ``default``: agent loops
- ``fallback-N``: extra model ids sharing the default credentials
- ``plan``: planner and replanner (falls back to default when unset)
"""

from __future__ import annotations

from typing import Dict, List, Optional, TypedDict

from langchain_openai import ChatOpenAI

from workflowAgent.config.settings import ModelSettings
from workflowAgent.llm.langchain_model import LangChainLanguageModel
from workflowAgent.llm.types import LanguageModel, ModelCatalog


class ModelConfig(TypedDict):
    id: str
    api_key: Optional[str]
    base_url: Optional[str]


def resolve_model_configs(models: ModelSettings) -> Dict[str, ModelConfig]:
    """Normalize the model slots into ``name -> ModelConfig``."""
    configs: Dict[str, ModelConfig] = {
        "default": {
            "id": models.default,
            "api_key": models.default_api_key,
            "base_url": models.default_base_url,
        }
    }
    for i, model_id in enumerate(models.fallback_ids(), start=1):
        configs[f"fallback-{i}"] = {
            "id": model_id,
            "api_key": models.default_api_key,
            "base_url": models.default_base_url,
        }
    if models.plan:
        configs["plan"] = {
            "id": models.plan,
            "api_key": models.plan_api_key or models.default_api_key,
            "base_url": models.plan_base_url or models.default_base_url,
        }
    return configs


def _chat_kwargs(model: str, api_key: Optional[str], base_url: Optional[str]) -> Dict[str, object]:
    if not api_key:
        raise RuntimeError(f"Missing API key for model {model}; configure it in .env")
    kwargs: Dict[str, object] = {"model": model, "api_key": api_key, "stream_usage": True}
    if base_url:
        kwargs["base_url"] = base_url
    return kwargs


def build_model_catalog(models: ModelSettings) -> ModelCatalog:
    """Instantiate every configured endpoint.

    Raises:
        RuntimeError: If a configured model has no API key
    """
    configs = resolve_model_configs(models)
    llms: Dict[str, LanguageModel] = {
        name: LangChainLanguageModel(
            ChatOpenAI(**_chat_kwargs(cfg["id"], cfg["api_key"], cfg["base_url"])),
            name=cfg["id"],
        )
        for name, cfg in configs.items()
    }
    agent_llms: List[str] = [name for name in configs if name != "plan"]
    plan_llms: List[str] = (["plan"] if "plan" in configs else []) + agent_llms
    return ModelCatalog(llms=llms, agent_llms=agent_llms, plan_llms=plan_llms)
