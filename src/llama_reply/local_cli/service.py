"""Generation service: prompt in, cleaned reply (or typed error) out."""
from __future__ import annotations
import logging
from dataclasses import asdict
from typing import Any, Mapping

from llama_reply.common.cleaning import (
    clean_response,
    is_valid_response,
    response_metrics,
    validate_response_length,
)
from llama_reply.common.config import Settings
from llama_reply.common.errors import EmptyResponseError
from llama_reply.common.logging_setup import preview
from llama_reply.common.params import compute_timeout_ms, merge_params
from llama_reply.common.schema import (
    GenerationMetadata,
    GenerationRequest,
    GenerationResult,
    ModelParams,
    RunState,
)
from llama_reply.common.templates import build_prompt
from llama_reply.local_cli.arguments import build_args
from llama_reply.local_cli.supervisor import ChunkCallback, ProcessSupervisor, RunHandle, RunOutcome

LOGGER = logging.getLogger("llama_reply.local_cli.service")

class GenerationService:
    """
    Facade used by callers (HTTP app, CLI).

    Holds configuration only. Every call to `generate` gets its own run
    handle and RunState, so overlapping calls do not see each other.
    """

    def __init__(self, settings: Settings, supervisor: ProcessSupervisor | None = None) -> None:
        self.settings = settings
        self.supervisor = supervisor or ProcessSupervisor(
            settings.llama_cpp_path,
            carry_tail=settings.stop_detection == "window",
            read_size=settings.read_size,
            terminate_grace_s=settings.terminate_grace_s,
        )

    @property
    def default_params(self) -> ModelParams:
        return self.settings.default_params

    def resolve_params(self, raw: ModelParams | Mapping[str, Any] | None) -> ModelParams:
        """Clamp `raw` into range and overlay it on the defaults."""
        if isinstance(raw, ModelParams):
            raw = asdict(raw)
        return merge_params(raw, self.default_params)

    async def generate(
        self,
        message: str,
        preprompt: str = "",
        params: ModelParams | Mapping[str, Any] | None = None,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> GenerationResult:
        """
        Run llama-cli once and return the cleaned reply.

        Raises:
            ValueError: `message` is empty.
            ProcessNotFoundError: The executable could not be spawned.
            GenerationTimeoutError: The deadline elapsed first.
            EmptyResponseError: Nothing usable was left after cleaning.
            ProcessFailedError: The child process failed unexpectedly.
        """
        request = GenerationRequest(
            message=message,
            preprompt=preprompt or "",
            params=self.resolve_params(params),
        )
        return await self.generate_request(request, on_chunk=on_chunk)

    async def start(
        self,
        request: GenerationRequest,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> "Generation":
        """Spawn the run and return a handle the caller can stop early."""
        params = self.resolve_params(request.params)
        prompt = build_prompt(request.message, request.preprompt)
        args = build_args(self.settings.model_path, prompt, params)
        timeout_ms = compute_timeout_ms(params)

        LOGGER.info(
            "Starting llama.cpp generation (prompt_len=%s, timeout=%sms, params=%s)",
            len(prompt),
            timeout_ms,
            params.to_dict(),
        )
        handle = await self.supervisor.start(args, timeout_ms, on_chunk=on_chunk)
        return Generation(self, handle, params)

    async def generate_request(
        self,
        request: GenerationRequest,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> GenerationResult:
        generation = await self.start(request, on_chunk=on_chunk)
        return await generation.result()

    def finalize(self, outcome: RunOutcome, params: ModelParams) -> GenerationResult:
        """Clean and validate the output of a resolved run."""
        state = outcome.state
        raw = state.accumulated_output
        cleaned = clean_response(raw)
        if not is_valid_response(cleaned):
            raise EmptyResponseError(
                "Empty response after processing",
                {
                    "originalResponse": preview(raw, 200),
                    "errorOutput": preview(state.accumulated_error_output, 200),
                    "chunkCount": state.chunk_count,
                    "returnCode": outcome.return_code,
                },
            )
        validate_response_length(cleaned)
        metadata = GenerationMetadata(
            chunk_count=state.chunk_count,
            original_length=len(raw),
            processing_time_ms=outcome.elapsed_ms,
        )
        metrics = response_metrics(cleaned)
        LOGGER.info(
            "Generation %s: %s chunks, %s -> %s chars, %s words in %sms",
            outcome.status.value,
            metadata.chunk_count,
            metadata.original_length,
            metrics.length,
            metrics.word_count,
            metadata.processing_time_ms,
        )
        return GenerationResult(text=cleaned, params=params, metadata=metadata)

    async def test_connection(self) -> bool:
        """True if the configured executable answers `--help` successfully."""
        ok = await self.supervisor.probe(self.settings.probe_timeout_s)
        LOGGER.info("llama.cpp connection test: %s", "ok" if ok else "failed")
        return ok

class Generation:
    """One in-flight generation, owned by whoever started it."""

    def __init__(self, service: GenerationService, handle: RunHandle, params: ModelParams) -> None:
        self.service = service
        self.handle = handle
        self.params = params

    @property
    def state(self) -> RunState:
        return self.handle.state

    def stop(self) -> bool:
        """Finish now with the output read so far. False if already resolved."""
        return self.handle.finish()

    async def result(self) -> GenerationResult:
        outcome = await self.handle.wait()
        return self.service.finalize(outcome, self.params)
