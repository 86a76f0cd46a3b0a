"""ValidatorRegistry — tracked validators keyed by address, persisted as JSON."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from valwatch.core.types import ValidatorRecord
from valwatch.validators.storage import read_json, write_json_atomic

logger = structlog.stdlib.get_logger()

RecordUpdate = Callable[[ValidatorRecord | None], ValidatorRecord]


class ValidatorRegistry:
    """In-memory table of ``ValidatorRecord`` with batched JSON persistence.

    Records are never deleted; a validator leaving the active set is only
    marked inactive.  ``upsert`` flags the registry dirty when the stored
    record actually changes, and ``persist`` writes the whole table.

    Usage::

        registry = ValidatorRegistry(Path("data/validators.json"))
        registry.restore()
        registry.upsert(addr, lambda rec: rec.model_copy(update={"active": False}))
        if registry.dirty:
            registry.persist()
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._records: dict[str, ValidatorRecord] = {}
        self._dirty = False

    # ── Properties ───────────────────────────────────────────────

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def dirty(self) -> bool:
        """Whether any record changed since the last persist/restore."""
        return self._dirty

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, address: object) -> bool:
        return address in self._records

    # ── Table access ─────────────────────────────────────────────

    def get(self, address: str) -> ValidatorRecord | None:
        return self._records.get(address)

    def upsert(self, address: str, fn: RecordUpdate) -> ValidatorRecord:
        """Replace the record for *address* with ``fn(current_or_None)``."""
        previous = self._records.get(address)
        updated = fn(previous)
        if updated.address != address:
            raise ValueError(
                f"record address {updated.address!r} does not match key {address!r}"
            )
        if updated != previous:
            self._records[address] = updated
            self._dirty = True
        return updated

    def all(self) -> list[ValidatorRecord]:
        return [self._records[a] for a in sorted(self._records)]

    def active_addresses(self) -> set[str]:
        return {a for a, rec in self._records.items() if rec.active}

    # ── Serialisation ────────────────────────────────────────────

    def to_document(self) -> dict[str, dict[str, Any]]:
        """The persisted layout: address → camelCase record document."""
        return {
            address: rec.model_dump(mode="json", by_alias=True)
            for address, rec in sorted(self._records.items())
        }

    def load_document(self, document: dict[str, Any]) -> int:
        """Replace the table from a persisted document.

        Malformed entries are skipped and logged. Returns the number of
        records loaded.
        """
        records: dict[str, ValidatorRecord] = {}
        for address, raw in document.items():
            if not isinstance(raw, dict):
                logger.error("registry_record_invalid", address=address, reason="not an object")
                continue
            stored = raw.get("address")
            if stored is not None and stored != address:
                logger.warning(
                    "registry_record_address_mismatch",
                    address=address,
                    stored_address=stored,
                )
            # The document key is authoritative; upsert relies on it.
            try:
                records[address] = ValidatorRecord.model_validate({**raw, "address": address})
            except ValidationError as exc:
                logger.error(
                    "registry_record_invalid",
                    address=address,
                    reason=str(exc),
                )
        self._records = records
        self._dirty = False
        return len(records)

    # ── Durable storage ──────────────────────────────────────────

    def persist(self) -> None:
        """Write the full table to disk.

        Raises:
            PersistenceError: the file could not be written.
        """
        if self._path is None:
            self._dirty = False
            return
        write_json_atomic(self._path, self.to_document())
        self._dirty = False
        logger.debug("registry_persisted", path=str(self._path), records=len(self._records))

    def restore(self) -> int:
        """Load the table from disk, starting empty on any failure.

        Never raises: a missing file is a first run; an unreadable or
        corrupt one loses the previous state and is logged as an error.
        """
        self._records = {}
        self._dirty = False
        if self._path is None:
            return 0
        if not self._path.exists():
            logger.warning("registry_file_missing", path=str(self._path))
            return 0
        try:
            document = read_json(self._path)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("registry_restore_failed", path=str(self._path), error=str(exc))
            return 0
        if not isinstance(document, dict):
            logger.error(
                "registry_restore_failed",
                path=str(self._path),
                error="top-level document is not an object",
            )
            return 0
        count = self.load_document(document)
        logger.info("registry_restored", path=str(self._path), records=count)
        return count
