"""Generation parameter limits, clamping and defaults."""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Mapping

from llama_reply.common.schema import ModelParams

LOGGER = logging.getLogger("llama_reply.params")

MIN_TIMEOUT_MS = 30_000
TIMEOUT_MS_PER_TOKEN = 100

@dataclass(frozen=True)
class ParamLimit:
    min: float
    max: float
    integer: bool = False

    def clamp(self, value: float) -> float:
        return max(self.min, min(self.max, value))

PARAM_LIMITS: dict[str, ParamLimit] = {
    "temperature": ParamLimit(0.1, 2.0),
    "max_tokens": ParamLimit(1, 4096, integer=True),
    "top_p": ParamLimit(0.1, 1.0),
    "context_size": ParamLimit(256, 8192, integer=True),
    "repeat_penalty": ParamLimit(0.8, 1.5),
    "seed": ParamLimit(-1, 2**53 - 1, integer=True),
}

DEFAULT_MODEL_PARAMS = ModelParams()

# Callers send camelCase; Python code and YAML use snake_case.
_ALIASES = {
    "temperature": "temperature",
    "maxTokens": "max_tokens",
    "max_tokens": "max_tokens",
    "topP": "top_p",
    "top_p": "top_p",
    "contextSize": "context_size",
    "context_size": "context_size",
    "repeatPenalty": "repeat_penalty",
    "repeat_penalty": "repeat_penalty",
    "seed": "seed",
}

def _parse_number(value: Any, as_int: bool) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    # seed truncates toward zero: "3.7" -> 3
    if as_int and math.isfinite(number):
        return int(number)
    return number

def clamp_params(raw: Mapping[str, Any] | None) -> dict[str, float | int]:
    """
    Keep the recognized, numeric parameters of `raw`, clamped into range.

    Unknown keys and values that do not parse as numbers are dropped without
    error. An empty result means no usable parameter was supplied.

    Args:
        raw: Parameter mapping as received from a caller (values may be strings).

    Returns:
        Mapping of ModelParams field names to clamped values.
    """
    validated: dict[str, float | int] = {}
    for key, value in (raw or {}).items():
        name = _ALIASES.get(key)
        if name is None:
            LOGGER.debug("Dropping unknown parameter %r", key)
            continue
        limit = PARAM_LIMITS[name]
        number = _parse_number(value, as_int=name == "seed")
        if number is None:
            LOGGER.debug("Dropping non-numeric parameter %s=%r", key, value)
            continue
        clamped = limit.clamp(number)
        validated[name] = int(clamped) if limit.integer else float(clamped)
    return validated

def merge_params(
    raw: Mapping[str, Any] | None,
    defaults: ModelParams = DEFAULT_MODEL_PARAMS,
) -> ModelParams:
    """Overlay the clamped values of `raw` on `defaults`."""
    return replace(defaults, **clamp_params(raw))

def compute_timeout_ms(params: ModelParams) -> int:
    """Run deadline: 100 ms per requested token, never below 30 s."""
    return max(MIN_TIMEOUT_MS, params.max_tokens * TIMEOUT_MS_PER_TOKEN)
