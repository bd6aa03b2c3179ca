"""FastAPI front for the local llama.cpp generation service.

Endpoints:
- GET /health
- GET /status
- GET /test-connection
- POST /generate  { "message": "...", "preprompt": "...", "modelParams": {...} }
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from llama_reply.common.config import load_settings
from llama_reply.common.errors import ErrorKind, GenerationError
from llama_reply.common.logging_setup import setup_logging
from llama_reply.common.params import clamp_params
from llama_reply.local_cli.service import GenerationService

LOGGER = logging.getLogger("llama_reply.serve.app")

SETTINGS = load_settings()
setup_logging(SETTINGS.log_level)
SERVICE = GenerationService(SETTINGS)

# kind -> (HTTP status, stable code)
ERROR_STATUS: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.TIMEOUT: (408, "GENERATION_TIMEOUT"),
    ErrorKind.EMPTY_RESPONSE: (502, "EMPTY_RESPONSE"),
    ErrorKind.PROCESS_NOT_FOUND: (503, "LLAMA_NOT_FOUND"),
    ErrorKind.PROCESS_ERROR: (500, "GENERATION_ERROR"),
}

class GenerateIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    message: str = Field(min_length=1, max_length=5000)
    preprompt: str = Field(default="", max_length=10000)
    model_params: dict[str, Any] | None = None

class GenerateMetadata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    chunk_count: int
    original_length: int
    processing_time_ms: int

class GenerateOut(BaseModel):
    """camelCase on the wire, like /status."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    response: str
    model_params: dict[str, Any]
    metadata: GenerateMetadata

app = FastAPI()

@app.on_event("startup")
def _check_paths_on_startup() -> None:
    """Warn early if the configured executable or model file is missing."""
    for label, path in (("executable", SETTINGS.llama_cpp_path), ("model", SETTINGS.model_path)):
        if not Path(path).exists():
            LOGGER.warning("llama.cpp %s not found at %s", label, path)

@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "model": Path(SERVICE.settings.model_path).name}

@app.get("/status")
def status() -> dict[str, Any]:
    return {
        "status": "ready",
        "modelParams": SERVICE.default_params.to_dict(),
        "executable": SERVICE.settings.llama_cpp_path,
        "model": SERVICE.settings.model_path,
    }

@app.get("/test-connection")
async def test_connection() -> dict[str, Any]:
    ok = await SERVICE.test_connection()
    return {"connected": ok, "executable": SERVICE.settings.llama_cpp_path}

@app.post("/generate", response_model=GenerateOut)
async def generate(body: GenerateIn) -> Any:
    if body.model_params and not clamp_params(body.model_params):
        raise HTTPException(status_code=422, detail="No valid model parameters provided")

    LOGGER.info(
        "Chat request received (message_len=%s, preprompt_len=%s, custom_params=%s)",
        len(body.message),
        len(body.preprompt),
        bool(body.model_params),
    )
    try:
        result = await SERVICE.generate(body.message, body.preprompt, body.model_params)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except GenerationError as e:
        status_code, code = ERROR_STATUS[e.kind]
        LOGGER.error("Generation failed (%s): %s", code, e.message)
        return JSONResponse(status_code=status_code, content={**e.to_dict(), "code": code})

    return GenerateOut.model_validate(result.to_dict())
