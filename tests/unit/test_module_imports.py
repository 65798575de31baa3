from __future__ import annotations

import subprocess
import sys

import pytest

MODULES = [
  "illumina.storage.workflow_repo",
  "illumina.storage.memory_workflow_repo",
  "illumina.storage.postgres_workflow_repo",
  "illumina.storage.verse_cache_repo",
  "illumina.storage.postgres_verse_cache_repo",
  "illumina.verses.lookup",
  "illumina.verses.validator",
  "illumina.workflow.models",
  "illumina.workflow.runner",
  "illumina.core.lifespan",
]


@pytest.mark.parametrize("module", MODULES)
def test_module_imports_first_in_a_fresh_interpreter(module: str) -> None:
  result = subprocess.run([sys.executable, "-c", f"import {module}"], capture_output=True, text=True, check=False)

  assert result.returncode == 0, result.stderr
