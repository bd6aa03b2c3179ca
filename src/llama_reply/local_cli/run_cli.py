"""Generate one reply from the command line through the local llama.cpp CLI.

Example:
    llama-reply --message "Bonjour" --param maxTokens=128 --param seed=42
"""
from __future__ import annotations
import argparse
import asyncio
import logging
import sys

from llama_reply.common.config import load_settings
from llama_reply.common.errors import GenerationError
from llama_reply.common.logging_setup import setup_logging
from llama_reply.local_cli.service import GenerationService

LOGGER = logging.getLogger("llama_reply.local_cli.run")

def parse_param(item: str) -> tuple[str, str]:
    key, sep, value = item.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected key=value, got {item!r}")
    return key.strip(), value.strip()

def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Generate a reply with a local llama.cpp CLI")
    ap.add_argument("--message", help="User message")
    ap.add_argument("--preprompt", default="", help="Optional system preamble")
    ap.add_argument("--cfg", default=None, help="Config path (default: configs/llama.yaml)")
    ap.add_argument("--param", action="append", type=parse_param, default=[], metavar="KEY=VALUE",
                    help="Model parameter override, e.g. temperature=0.4 (repeatable)")
    ap.add_argument("--check", action="store_true", help="Only test that the executable runs")
    args = ap.parse_args(argv)

    settings = load_settings(args.cfg)
    setup_logging(settings.log_level)
    service = GenerationService(settings)

    if args.check:
        ok = asyncio.run(service.test_connection())
        print("ok" if ok else "unavailable")
        return 0 if ok else 1

    if not args.message:
        ap.error("--message is required unless --check is given")

    raw_params = dict(args.param)
    try:
        result = asyncio.run(service.generate(args.message, args.preprompt, raw_params or None))
    except GenerationError as e:
        LOGGER.error("%s: %s %s", e.kind.value, e.message, e.details)
        return 1

    LOGGER.info(
        "Latency: %sms | chunks=%s raw_len=%s",
        result.metadata.processing_time_ms,
        result.metadata.chunk_count,
        result.metadata.original_length,
    )
    print(result.text)
    return 0

if __name__ == "__main__":
    sys.exit(main())
