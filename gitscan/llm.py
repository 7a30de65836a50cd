from typing import Any, Dict, List, Optional

from openai import OpenAI

from .settings import get_base_url


# Models that reject non-default temperature (omit temperature for these)
FIXED_TEMP_MODELS = ("gpt-5", "o1", "o3", "o4")

# Models that accept a reasoning effort setting
REASONING_MODELS = ("gpt-5", "o1", "o3", "o4")

DEEP_REASONING_BUDGET = 32768
FAST_REASONING_BUDGET = 0


def is_fixed_temperature_model(model: str) -> bool:
    m = (model or "").lower()
    return any(m.startswith(x) for x in FIXED_TEMP_MODELS)


def is_reasoning_model(model: str) -> bool:
    m = (model or "").lower()
    return any(m.startswith(x) for x in REASONING_MODELS)


def reasoning_effort_for(model: str, budget: int) -> Optional[str]:
    """Translate a reasoning token budget into the API's effort setting.

    Returns None for models that do not take one; the parameter must be left
    out for those.
    """
    if not is_reasoning_model(model):
        return None
    if budget <= 0:
        return "minimal" if model.lower().startswith("gpt-5") else "low"
    if budget >= DEEP_REASONING_BUDGET:
        return "high"
    return "medium"


def make_client(api_key: str) -> OpenAI:
    return OpenAI(api_key=api_key, base_url=get_base_url())


def json_schema_format(name: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {"name": name, "strict": True, "schema": schema},
    }


def completion_params(model: str, messages: List[Dict[str, str]], temperature: float = 0.0, **extra: Any) -> Dict[str, Any]:
    params: Dict[str, Any] = {"model": model, "messages": messages}
    if not is_fixed_temperature_model(model):
        params["temperature"] = temperature
    params.update(extra)
    return params
