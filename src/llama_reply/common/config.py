"""Runtime settings: YAML file first, environment variables on top."""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from llama_reply.common.params import DEFAULT_MODEL_PARAMS, merge_params
from llama_reply.common.schema import ModelParams

DEFAULT_CONFIG_PATH = "configs/llama.yaml"
DEFAULT_LLAMA_CPP_PATH = "./llama.cpp/build/bin/llama-cli"
DEFAULT_MODEL_PATH = "./llama.cpp/models/Phi-3-mini-4k-instruct-Q2_K.gguf"
STOP_DETECTION_MODES = ("window", "chunk")

class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be used."""

@dataclass
class Settings:
    """Where the executable and model live, and how runs are supervised."""
    llama_cpp_path: str = DEFAULT_LLAMA_CPP_PATH
    model_path: str = DEFAULT_MODEL_PATH
    stop_detection: str = "window"
    read_size: int = 4096
    terminate_grace_s: float = 5.0
    probe_timeout_s: float = 5.0
    log_level: str = "INFO"
    default_params: ModelParams = field(default_factory=lambda: DEFAULT_MODEL_PARAMS)

def load_cfg(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the root")
    return data

def load_settings(cfg_path: str | None = None) -> Settings:
    """
    Build Settings from a YAML file and the environment.

    Args:
        cfg_path: YAML config path. Defaults to $LLAMA_REPLY_CONFIG, then
            configs/llama.yaml; a missing default file is not an error.
    """
    explicit = cfg_path or os.getenv("LLAMA_REPLY_CONFIG")
    path = explicit or DEFAULT_CONFIG_PATH
    if Path(path).exists():
        cfg = load_cfg(path)
    elif explicit:
        raise ConfigError(f"Config file not found at {path}")
    else:
        cfg = {}

    stop_detection = str(cfg.get("stop_detection", "window")).lower()
    if stop_detection not in STOP_DETECTION_MODES:
        raise ConfigError(
            f"stop_detection must be one of {STOP_DETECTION_MODES}, got {stop_detection!r}"
        )
    params_cfg = cfg.get("model_params") or {}
    if not isinstance(params_cfg, dict):
        raise ConfigError("model_params must be a mapping")

    try:
        return Settings(
            llama_cpp_path=os.getenv("LLAMA_CPP_PATH") or str(cfg.get("llama_cpp_path", DEFAULT_LLAMA_CPP_PATH)),
            model_path=os.getenv("MODEL_PATH") or str(cfg.get("model_path", DEFAULT_MODEL_PATH)),
            stop_detection=stop_detection,
            read_size=int(cfg.get("read_size", 4096)),
            terminate_grace_s=float(cfg.get("terminate_grace_s", 5.0)),
            probe_timeout_s=float(cfg.get("probe_timeout_s", 5.0)),
            log_level=os.getenv("LOG_LEVEL") or str(cfg.get("log_level", "INFO")),
            default_params=merge_params(params_cfg),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {path}: {e}") from e
