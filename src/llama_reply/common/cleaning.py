"""Cleaning and validation of raw llama.cpp output."""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass

from llama_reply.common.logging_setup import preview

LOGGER = logging.getLogger("llama_reply.cleaning")

TEMPLATE_DELIMITERS = (
    "<|assistant|>",
    "<|user|>",
    "<|system|>",
    "<|end|>",
    "<|endoftext|>",
)

# Start of the next turn left at the end of the buffer. Applied in order.
TRAILING_PROMPT_PATTERNS = (
    re.compile(r"\n\n?>\s*\Z"),
    re.compile(r">\s*\Z"),
    re.compile(r"\nUser:\s*\Z"),
    re.compile(r"\nAssistant:\s*\Z"),
)

MIN_REPEAT_LEN = 10
MAX_REPEAT_LEN = 1024
MAX_RESPONSE_LENGTH = 50_000

_MANY_NEWLINES = re.compile(r"\n{3,}")
_MANY_SPACES = re.compile(r"\s{3,}")

def _collapse_line(line: str, min_len: int, max_len: int) -> str:
    out: list[str] = []
    i = 0
    n = len(line)
    while i < n:
        unit_len = 0
        if n - i >= 2 * min_len:
            seed = line[i:i + min_len]
            # candidate periods are the next occurrences of the first min_len chars
            end = min(i + max_len, (n + i) // 2) + min_len
            j = line.find(seed, i + min_len, end)
            while j != -1:
                period = j - i
                if line[i:j] == line[j:j + period]:
                    unit_len = period
                    break
                j = line.find(seed, j + 1, end)
        if not unit_len:
            out.append(line[i])
            i += 1
            continue
        unit = line[i:i + unit_len]
        out.append(unit)
        i += unit_len
        while line.startswith(unit, i):
            i += unit_len
    return "".join(out)

def collapse_repeats(text: str, min_len: int = MIN_REPEAT_LEN, max_len: int = MAX_REPEAT_LEN) -> str:
    """
    Collapse immediately repeated runs of at least `min_len` characters.

    Scans left to right. At each position the shortest period that repeats
    right away wins, every consecutive copy of it is dropped, and scanning
    resumes after the kept copy. Runs never span a newline.

    >>> collapse_repeats("abcdefghij" * 3 + "!")
    'abcdefghij!'
    """
    return "\n".join(_collapse_line(line, min_len, max_len) for line in text.split("\n"))

def clean_response(raw: str | None) -> str:
    """
    Strip protocol artifacts from a raw buffer.

    Steps, in order: template delimiters, trailing prompt continuation,
    repeated runs, newline and whitespace collapse, trim.
    """
    if not raw:
        return ""
    cleaned = raw
    for delimiter in TEMPLATE_DELIMITERS:
        cleaned = cleaned.replace(delimiter, "")
    for pattern in TRAILING_PROMPT_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = collapse_repeats(cleaned)
    cleaned = _MANY_NEWLINES.sub("\n\n", cleaned)
    cleaned = _MANY_SPACES.sub(" ", cleaned)
    return cleaned.strip()

def is_valid_response(text: str | None) -> bool:
    """A response is usable when something other than whitespace is left."""
    if not text or not text.strip():
        LOGGER.debug("Response validation failed (length=%s)", len(text or ""))
        return False
    return True

def validate_response_length(text: str | None, max_length: int = MAX_RESPONSE_LENGTH) -> bool:
    if not text:
        return False
    if len(text) > max_length:
        LOGGER.warning(
            "Response exceeds maximum length: %s > %s (%r)",
            len(text),
            max_length,
            preview(text),
        )
        return False
    return True

@dataclass(frozen=True)
class ResponseMetrics:
    length: int
    word_count: int
    line_count: int
    has_valid_structure: bool

def response_metrics(text: str | None) -> ResponseMetrics:
    """Rough shape of a reply, used for logging."""
    if not text:
        return ResponseMetrics(length=0, word_count=0, line_count=0, has_valid_structure=False)
    words = text.split()
    return ResponseMetrics(
        length=len(text),
        word_count=len(words),
        line_count=len(text.split("\n")),
        has_valid_structure=len(text) > 10 and len(words) > 2,
    )
