from __future__ import annotations

import json
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .logger import get_logger
from .models import ProgressCheckpoint

logger = get_logger(__name__)


class StorageBase(ABC):
    """Abstract base class for progress checkpoint backends."""

    @abstractmethod
    def write(self, checkpoint: ProgressCheckpoint) -> None:
        """Persist a single checkpoint."""

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release resources."""


class JsonlCheckpointStore(StorageBase):
    """Appends progress checkpoints as JSON Lines using a background writer thread."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._queue: queue.Queue[Optional[ProgressCheckpoint]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, checkpoint: ProgressCheckpoint) -> None:
        self._queue.put(checkpoint)

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                f.write(json.dumps(asdict(item), ensure_ascii=False) + "\n")
                f.flush()


def write_json(path: Union[str, Path], payload: Mapping[str, Any]) -> Path:
    """Write the final run output as an indented JSON document."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
    logger.info("Wrote %s", target)
    return target
