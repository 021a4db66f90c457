"""Artifact storage for rendered resume PDFs."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class ArtifactStore(Protocol):
    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store *data* at *path* and return its public URL."""
        ...


class LocalArtifactStore:
    """Writes artifacts under a directory that the API serves at ``/artifacts``."""

    def __init__(self, root_dir: Path, public_base_url: str) -> None:
        self.root_dir = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid artifact path: {path!r}")
        return self.root_dir.joinpath(*relative.parts)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("artifact_stored", path=path, bytes=len(data), content_type=content_type)
        return f"{self.public_base_url}/artifacts/{path}"
