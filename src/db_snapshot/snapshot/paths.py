"""Artifact file naming and discovery.

Artifacts live under ``<base>/backups/<camelCaseDb>/`` and are named
``<prefix>-DD-MM-YYYY-<epoch ms>.sql``.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Literal

BACKUPS_DIRNAME = "backups"

ArtifactPrefix = Literal["dump", "schema"]


def to_camel_case(name: str) -> str:
    """Convert a database name to camelCase.

    Example:
        >>> to_camel_case("my_app-db")
        'myAppDb'
    """
    words = [w for w in re.split(r"[^0-9A-Za-z]+", name) if w]
    if not words:
        return ""
    return words[0][0].lower() + words[0][1:] + "".join(w[0].upper() + w[1:] for w in words[1:])


def get_dump_file_path(
    db_name: str,
    prefix: ArtifactPrefix,
    base_dir: Path | None = None,
    now: datetime | None = None,
) -> Path:
    """Build the artifact path for a new dump or schema export.

    Args:
        db_name: Database (or profile) name, converted to camelCase.
        prefix: ``"dump"`` or ``"schema"``.
        base_dir: Directory holding ``backups/`` (default: cwd).
        now: Timestamp to use (default: current local time).
    """
    if prefix not in ("dump", "schema"):
        raise ValueError(f"Unknown artifact prefix: {prefix}")
    now = now or datetime.now()
    base_dir = base_dir or Path.cwd()
    millis = int(now.timestamp() * 1000)
    filename = f"{prefix}-{now:%d-%m-%Y}-{millis}.sql"
    return base_dir / BACKUPS_DIRNAME / to_camel_case(db_name) / filename


def find_artifacts(directory: Path) -> list[str]:
    """List ``.sql`` files below ``directory`` as sorted relative POSIX paths.

    Returns an empty list if the directory does not exist.
    """
    if not directory.is_dir():
        return []
    return sorted(
        path.relative_to(directory).as_posix()
        for path in directory.rglob("*.sql")
        if path.is_file()
    )


def latest_artifact(directory: Path) -> Path | None:
    """Most recently modified ``.sql`` file below ``directory``."""
    candidates = [directory / rel for rel in find_artifacts(directory)]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stat().st_mtime)
