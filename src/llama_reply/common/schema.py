"""Dataclasses for generation requests, per-run state and results."""
from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Any

@dataclass(frozen=True)
class ModelParams:
    """Sampling and context settings passed to the llama.cpp CLI."""
    temperature: float = 0.7
    max_tokens: int = 512
    top_p: float = 0.95
    context_size: int = 2048
    repeat_penalty: float = 1.1
    seed: int = -1

    def to_dict(self) -> dict[str, Any]:
        """Wire representation, using the camelCase names callers send."""
        return {
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "topP": self.top_p,
            "contextSize": self.context_size,
            "repeatPenalty": self.repeat_penalty,
            "seed": self.seed,
        }

@dataclass(frozen=True)
class GenerationRequest:
    """One call to the generation service."""
    message: str
    preprompt: str = ""
    params: ModelParams = field(default_factory=ModelParams)

    def __post_init__(self) -> None:
        if not self.message or not self.message.strip():
            raise ValueError("message must be a non-empty string")

@dataclass
class RunState:
    """
    Mutable record of one subprocess run.

    Owned by a single RunHandle and only touched from that run's reader
    tasks and deadline callback.
    """
    accumulated_output: str = ""
    accumulated_error_output: str = ""
    chunk_count: int = 0
    start_time: float = field(default_factory=time.monotonic)
    response_sent: bool = False

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)

@dataclass(frozen=True)
class GenerationMetadata:
    chunk_count: int
    original_length: int
    processing_time_ms: int

@dataclass(frozen=True)
class GenerationResult:
    """Cleaned reply plus the parameters that produced it."""
    text: str
    params: ModelParams
    metadata: GenerationMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.text,
            "modelParams": self.params.to_dict(),
            "metadata": {
                "chunkCount": self.metadata.chunk_count,
                "originalLength": self.metadata.original_length,
                "processingTimeMs": self.metadata.processing_time_ms,
            },
        }
