"""Read `.env` files for local runs of the workflow core."""

from __future__ import annotations

import os
import re
from pathlib import Path

ENV_FILE_VARIABLE = "ILLUMINA_ENV_FILE"

_ASSIGNMENT_RE = re.compile(r"^(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.*)$")
_INLINE_COMMENT_RE = re.compile(r"\s+#.*$")


def default_env_path() -> Path:
  """`ILLUMINA_ENV_FILE` when set, otherwise `.env` next to the `illumina` package."""
  configured = os.getenv(ENV_FILE_VARIABLE, "").strip()
  if configured:
    return Path(configured).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  return _INLINE_COMMENT_RE.sub("", value)


def parse_env_file(path: Path) -> dict[str, str]:
  """Return the assignments in a `.env` file; a missing file yields no values.

  Blank lines, `#` comments and lines that are not `KEY=value` are ignored.
  An optional `export ` prefix is accepted. Unquoted values lose trailing
  ` # comments`; single- or double-quoted values are kept verbatim.
  """
  if not path.is_file():
    return {}

  values: dict[str, str] = {}
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    match = _ASSIGNMENT_RE.match(line)
    if match is None:
      continue
    values[match.group("key")] = _unquote(match.group("value").strip())
  return values


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Export a `.env` file into `os.environ` and return the names that were set."""
  applied = []
  for key, value in parse_env_file(path).items():
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied
