"""JSON file persistence for the counter document."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from hitcounter.migrations import detect_schema_version, repair_store_document
from hitcounter.models import CURRENT_SCHEMA_VERSION, Store

logger = logging.getLogger("hitcounter.store")


class CounterStoreError(RuntimeError):
    """Raised when the counter document cannot be read from or written to disk."""


class JsonCounterStore:
    """
    Whole-document store backed by a single JSON file.

    Saves go through a temporary sibling file and an atomic replace, so a
    concurrent load sees either the previous or the next document in full.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Store:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Store()
        except UnicodeDecodeError as exc:
            logger.warning("counter_store_corrupt path=%s action=reset error=%s", self._path, exc)
            return Store()
        except OSError as exc:
            raise CounterStoreError(f"Unable to read counter store at {self._path}") from exc

        if not raw.strip():
            return Store()

        try:
            document = json.loads(raw)
        except (ValueError, RecursionError) as exc:
            logger.warning("counter_store_corrupt path=%s action=reset error=%s", self._path, exc)
            return Store()

        stored_version = detect_schema_version(document)
        if stored_version < CURRENT_SCHEMA_VERSION:
            logger.info(
                "counter_store_migrating path=%s from_version=%s to_version=%s",
                self._path,
                stored_version,
                CURRENT_SCHEMA_VERSION,
            )

        try:
            return Store.model_validate(repair_store_document(document))
        except ValidationError as exc:  # pragma: no cover - repair output always validates
            logger.warning("counter_store_corrupt path=%s action=reset error=%s", self._path, exc)
            return Store()

    def save(self, store: Store) -> None:
        payload = store.to_json()
        directory = self._path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=directory,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            raise CounterStoreError(f"Unable to write counter store at {self._path}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning("counter_store_tmp_cleanup_failed path=%s", tmp_name)
