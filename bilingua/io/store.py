"""Translation record storage keyed by chapter identity.

Responsibilities:
- Persist chapter translation records with atomic, idempotent upserts.
- Serialize writes per chapter while letting different chapters interleave.
- Offer lookups used by cached-translation reuse and the `show` command.

Key types:
- `TranslationStore`: protocol consumed by translation sessions.
- `InMemoryTranslationStore`: process-local store for tests and embedding.
- `JsonFileTranslationStore`: one JSON document per chapter, swapped in atomically.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
import json
import os
from pathlib import Path
import tempfile
import threading
from typing import Any, Callable, Iterable, Protocol

from ..errors import StoreError
from ..models.datatypes import TranslationRecord, TranslationStatus
from ..text.slug import chapter_storage_key


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TranslationStore(Protocol):
    """Protocol for chapter translation persistence."""

    def commit(
        self,
        chapter_id: str,
        originals: Iterable[str],
        translations: Iterable[str],
        status: TranslationStatus,
    ) -> TranslationRecord:
        """Atomically upsert the record for a chapter; identical content is a no-op."""

    def clear(self, chapter_id: str) -> TranslationRecord:
        """Reset a chapter to `NOT_TRANSLATED` with empty sentence lists."""

    def load(self, chapter_id: str) -> TranslationRecord | None:
        """Return the stored record for a chapter, if any."""


def record_to_payload(record: TranslationRecord) -> dict[str, Any]:
    """Serialize a record into a JSON-compatible mapping."""

    return {
        "chapter_id": record.chapter_id,
        "original_sentences": list(record.original_sentences),
        "translated_sentences": list(record.translated_sentences),
        "status": record.status.name.lower(),
        "updated_at": record.updated_at.isoformat(),
    }


def record_from_payload(payload: Any) -> TranslationRecord:
    """Deserialize a record mapping, raising `ValueError` for malformed payloads."""

    if not isinstance(payload, dict):
        raise ValueError("Translation record payload must be an object.")
    try:
        chapter_id = payload["chapter_id"]
        originals = payload["original_sentences"]
        translations = payload["translated_sentences"]
        status = TranslationStatus[str(payload["status"]).upper()]
        updated_at_text = payload["updated_at"]
    except KeyError as exc:
        raise ValueError(f"Translation record is missing or has invalid field {exc}.") from exc
    if not isinstance(updated_at_text, str):
        raise ValueError("Translation record `updated_at` must be an ISO-8601 string.")
    updated_at = datetime.fromisoformat(updated_at_text)
    if not isinstance(chapter_id, str):
        raise ValueError("Translation record `chapter_id` must be a string.")
    for field_name, values in (
        ("original_sentences", originals),
        ("translated_sentences", translations),
    ):
        if not isinstance(values, list) or not all(isinstance(item, str) for item in values):
            raise ValueError(f"Translation record `{field_name}` must be a list of strings.")
    return TranslationRecord(
        chapter_id=chapter_id,
        original_sentences=tuple(originals),
        translated_sentences=tuple(translations),
        status=status,
        updated_at=updated_at,
    )


class _KeyedLockStore(ABC):
    """Shared commit/clear logic with one lock per chapter identity."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utc_now
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, chapter_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(chapter_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[chapter_id] = lock
            return lock

    def commit(
        self,
        chapter_id: str,
        originals: Iterable[str],
        translations: Iterable[str],
        status: TranslationStatus,
    ) -> TranslationRecord:
        """Upsert a chapter record; committing identical content leaves the store unchanged."""

        original_sentences = tuple(originals)
        translated_sentences = tuple(translations)
        with self._lock_for(chapter_id):
            existing = self._read_record(chapter_id)
            if existing is not None and existing.same_content(
                original_sentences, translated_sentences, status
            ):
                return existing

            record = TranslationRecord(
                chapter_id=chapter_id,
                original_sentences=original_sentences,
                translated_sentences=translated_sentences,
                status=status,
                updated_at=self._clock(),
            )
            try:
                record.validate()
            except ValueError as exc:
                raise StoreError(f"Refusing to store invalid record for `{chapter_id}`: {exc}") from exc
            self._write_record(record)
            return record

    def clear(self, chapter_id: str) -> TranslationRecord:
        """Reset a chapter to `NOT_TRANSLATED` and drop its sentence lists."""

        return self.commit(chapter_id, (), (), TranslationStatus.NOT_TRANSLATED)

    def load(self, chapter_id: str) -> TranslationRecord | None:
        """Return the stored record for a chapter, if any."""

        return self._read_record(chapter_id)

    @abstractmethod
    def _read_record(self, chapter_id: str) -> TranslationRecord | None:
        """Return the stored record for a chapter, or `None`."""

    @abstractmethod
    def _write_record(self, record: TranslationRecord) -> None:
        """Replace the stored record for `record.chapter_id` in one step."""


class InMemoryTranslationStore(_KeyedLockStore):
    """Process-local translation store."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        super().__init__(clock)
        self._records: dict[str, TranslationRecord] = {}
        self.write_count = 0

    def _read_record(self, chapter_id: str) -> TranslationRecord | None:
        return self._records.get(chapter_id)

    def _write_record(self, record: TranslationRecord) -> None:
        # A single dict assignment replaces the whole record at once.
        self._records[record.chapter_id] = record
        self.write_count += 1


class JsonFileTranslationStore(_KeyedLockStore):
    """Filesystem store writing one JSON document per chapter."""

    def __init__(self, root: Path, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize the store with a root directory (created lazily)."""

        super().__init__(clock)
        self.root = root

    def path_for(self, chapter_id: str) -> Path:
        """Return the JSON document path used for a chapter identity."""

        return self.root / f"{chapter_storage_key(chapter_id)}.json"

    def _read_record(self, chapter_id: str) -> TranslationRecord | None:
        path = self.path_for(chapter_id)
        try:
            raw_text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Failed to read translation record `{path}`: {exc}") from exc

        try:
            record = record_from_payload(json.loads(raw_text))
        except (json.JSONDecodeError, ValueError) as exc:
            raise StoreError(f"Translation record `{path}` is corrupted: {exc}") from exc
        if record.chapter_id != chapter_id:
            raise StoreError(
                f"Translation record `{path}` belongs to `{record.chapter_id}`, not `{chapter_id}`."
            )
        return record

    def _write_record(self, record: TranslationRecord) -> None:
        """Write to a temp file in the target directory and swap it in with `os.replace`."""

        path = self.path_for(record.chapter_id)
        serialized = json.dumps(
            record_to_payload(record),
            ensure_ascii=False,
            indent=2,
            sort_keys=True,
        )
        temp_path: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.stem}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_path = handle.name
                handle.write(serialized)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, path)
            temp_path = None
        except OSError as exc:
            raise StoreError(f"Failed to write translation record `{path}`: {exc}") from exc
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
