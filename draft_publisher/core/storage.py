"""Whole-file JSON documents with serialized read-modify-write cycles."""

import contextlib
import json
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Iterator

from filelock import FileLock, Timeout

from .config import settings
from .exceptions import PersistenceError
from .logging import get_logger

logger = get_logger(__name__)


def atomic_write_text(path: Path, content: str) -> None:
    """Write to a temporary file and atomically replace the destination."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp.{uuid.uuid4().hex}")
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


class JsonDocumentStore:
    """A JSON file read and written as one document.

    ``transaction()`` is the only way to mutate the document. It holds an
    in-process lock and a lock file for the whole read-modify-write cycle so
    concurrent registrations cannot lose each other's updates.
    """

    def __init__(
        self,
        path: Path,
        default_factory: Callable[[], dict[str, Any]],
        lock_timeout: float | None = None,
    ):
        self.path = Path(path)
        self._default_factory = default_factory
        self._lock = threading.RLock()
        self._file_lock = FileLock(
            str(self.path.with_name(f"{self.path.name}.lock")),
            timeout=lock_timeout if lock_timeout is not None else settings.lock_timeout_seconds,
        )

    def read(self) -> dict[str, Any]:
        """Read the whole document, or the default when it does not exist."""
        if not self.path.exists():
            return self._default_factory()
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read JSON document ({e})", self.path) from e
        if not isinstance(data, dict):
            raise PersistenceError("JSON document is not an object", self.path)
        return data

    def write(self, data: dict[str, Any]) -> None:
        """Replace the whole document atomically."""
        with self._locked():
            self._write(data)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[dict[str, Any]]:
        """Read, yield for in-place mutation, then write back atomically.

        Nothing is written if the block raises.
        """
        with self._locked():
            data = self.read()
            yield data
            self._write(data)

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            try:
                with self._file_lock:
                    yield
            except Timeout as e:
                raise PersistenceError("Timed out waiting for lock", self.path) from e

    def _write(self, data: dict[str, Any]) -> None:
        try:
            content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
            atomic_write_text(self.path, content)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot write JSON document ({e})", self.path) from e
        logger.debug("json_document_written", path=str(self.path))
