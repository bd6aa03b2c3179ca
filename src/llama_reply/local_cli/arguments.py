"""Argument vector for the llama.cpp CLI."""
from __future__ import annotations

from llama_reply.common.schema import ModelParams

def build_args(model_path: str, prompt: str, params: ModelParams) -> list[str]:
    """
    Translate a prompt and parameter set into llama-cli flags.

    The order is fixed; `--seed` is only passed when a seed is pinned
    (seed != -1).
    """
    args = [
        "-m", str(model_path),
        "-p", prompt,
        "-c", str(params.context_size),
        "-n", str(params.max_tokens),
        "--temp", str(params.temperature),
        "--top-p", str(params.top_p),
        "--repeat-penalty", str(params.repeat_penalty),
        "--no-display-prompt",
    ]
    if params.seed != -1:
        args.extend(["--seed", str(params.seed)])
    return args
