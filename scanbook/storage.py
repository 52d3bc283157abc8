"""
Output store: the filesystem operations the converter performs.

No transactional guarantees. Each write is attempted once and any OSError
propagates to the caller.
"""

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class OutputStore:
    """Writes artifacts and manages working directories."""

    def write_file(self, path: Path, data: bytes) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"Wrote {len(data)} bytes to {path}")
        return path

    def ensure_dir(self, path: Path) -> Path:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def remove_dir(self, path: Path) -> None:
        """Delete a directory tree. A missing directory is not an error."""
        path = Path(path)
        if path.exists():
            shutil.rmtree(path)

    def list_files(self, path: Path) -> list[Path]:
        path = Path(path)
        if not path.exists():
            return []
        return sorted(p for p in path.rglob("*") if p.is_file())
