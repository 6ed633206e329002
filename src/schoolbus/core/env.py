"""
`.env` loading and project-relative paths.

Routing credentials (`GOOGLE_MAPS_API_KEY`, `MAPBOX_ACCESS_TOKEN`) and a private
`OSRM_BASE_URL` usually live in a deployment's `.env`. The project root is, in order:
`SCHOOLBUS_PROJECT_ROOT`, the directory of `SCHOOLBUS_ENV_FILE`, or the nearest working
directory ancestor holding a `.env` or a `pyproject.toml`. Fixture paths given to the CLI
are resolved against it.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

_ROOT_MARKERS = (".env", "pyproject.toml")


@lru_cache
def get_project_root() -> Path:
    override = os.getenv("SCHOOLBUS_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    env_file = os.getenv("SCHOOLBUS_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    cwd = Path.cwd().resolve()
    for candidate in (cwd, *cwd.parents):
        if any((candidate / marker).is_file() for marker in _ROOT_MARKERS):
            return candidate
    return cwd


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the project's `.env` once; variables already set in the process win."""
    explicit = os.getenv("SCHOOLBUS_ENV_FILE")
    env_path = Path(explicit).expanduser().resolve() if explicit else get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Absolute paths pass through; relative ones hang off the project root."""
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return (get_project_root() / p).resolve()
