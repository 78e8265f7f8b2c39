"""Content fingerprinting for watched-folder files."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from invoicedesk.errors import ScanError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def hash_file(path: str | Path) -> str:
    """Return the lowercase hex SHA-256 of a file's bytes.

    Raises:
        ScanError: If the file cannot be opened or read.
    """
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as fh:
            for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as exc:
        logger.warning("Cannot hash %s: %s", path, exc)
        raise ScanError(
            f"Cannot read {path}: {exc}",
            path=str(path),
            user_message=f"Cannot read file {Path(path).name}",
        ) from exc
    return digest.hexdigest()
