from __future__ import annotations

import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest


@pytest.fixture
def fake_llama(tmp_path: Path) -> Callable[[str], Path]:
    """Write an executable Python script that stands in for llama-cli."""
    counter = {"n": 0}

    def _make(body: str) -> Path:
        counter["n"] += 1
        script = tmp_path / f"llama-cli-{counter['n']}"
        source = "import sys, time\n" + textwrap.dedent(body)
        script.write_text(f"#!{sys.executable}\n{source}", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make


@pytest.fixture
def model_file(tmp_path: Path) -> Path:
    model = tmp_path / "model.gguf"
    model.write_text("dummy", encoding="utf-8")
    return model
