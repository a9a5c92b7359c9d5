"""Persistence sinks for finished edit results."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

from maskedit.types import EditResult
from maskedit.utils.image import save_image

logger = logging.getLogger(__name__)


@runtime_checkable
class ArtifactSink(Protocol):
    """Receives each result as soon as it is ready.

    Implementations may raise; the adapter logs the failure and keeps the
    result in the returned list.
    """

    def store(self, result: EditResult) -> None:
        ...


class DirectorySink:
    """Write results as ``<prefix>result-<backend>-<millis>-option<n>.png`` plus a JSON sidecar."""

    def __init__(self, root: Path, prefix: str = "", write_metadata: bool = True) -> None:
        self.root = Path(root)
        self.prefix = prefix
        self.write_metadata = write_metadata
        self.stored: list[Path] = []

    def filename(self, result: EditResult) -> str:
        backend = result.metadata.get("backend", "unknown")
        millis = int(time.time() * 1000)
        return f"{self.prefix}result-{backend}-{millis}-option{result.sequence_number}.png"

    def store(self, result: EditResult) -> None:
        path = save_image(result.pixels, self.root / self.filename(result))
        if self.write_metadata:
            sidecar = path.with_suffix(".json")
            sidecar.write_text(json.dumps(
                {"sequence_number": result.sequence_number, **result.metadata}, indent=2,
            ))
        self.stored.append(path)
        logger.info("Saved result %d to %s", result.sequence_number, path)
