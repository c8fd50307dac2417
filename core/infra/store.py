"""
JSON record store: the live output tree and the last-known-good vault.

Layout::

    <data_dir>/<entity>.<event_kind>.json         live, rewritten every run
    <data_dir>/_lkg/<entity>.<event_kind>.json    vault, Fresh records only
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from core.errors import StoreUnavailableError, StoreWriteError
from core.models import (
    FreshRecord,
    SourceDescriptor,
    StaleRecord,
    UnavailableRecord,
    event_record_adapter,
)

logger = logging.getLogger(__name__)

Record = Union[FreshRecord, StaleRecord, UnavailableRecord]


class RecordStore:
    """Filesystem persistence for published records."""

    def __init__(self, data_dir: Union[str, Path] = "public/data", lkg_dirname: str = "_lkg"):
        self.live_dir = Path(data_dir)
        self.lkg_dir = self.live_dir / lkg_dirname

    # ------------------------------------------------------------------ #
    # Paths
    @staticmethod
    def _filename(entity: str, event_kind: str) -> str:
        return f"{entity}.{event_kind}.json"

    def live_path(self, descriptor: SourceDescriptor) -> Path:
        return self.live_dir / self._filename(descriptor.entity, descriptor.event_kind)

    def lkg_path(self, descriptor: SourceDescriptor) -> Path:
        return self.lkg_dir / self._filename(descriptor.entity, descriptor.event_kind)

    # ------------------------------------------------------------------ #
    # Setup
    def ensure_dirs(self) -> None:
        """Create both trees if absent and check they are writable.

        Raises:
            StoreUnavailableError: the deployment cannot persist anything.
        """
        for directory in (self.live_dir, self.lkg_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreUnavailableError(f"Cannot create data directory {directory}: {e}") from e
            if not os.access(directory, os.W_OK | os.X_OK):
                raise StoreUnavailableError(f"Data directory {directory} is not writable")

    # ------------------------------------------------------------------ #
    # Reads
    def read_lkg(self, descriptor: SourceDescriptor) -> Optional[Record]:
        """Last-known-good record, or ``None`` when missing or corrupt. Never raises."""
        return self._read(self.lkg_path(descriptor), "LKG")

    def read_live(self, descriptor: SourceDescriptor) -> Optional[Record]:
        """Current live record, same semantics as :meth:`read_lkg`."""
        return self._read(self.live_path(descriptor), "live")

    @staticmethod
    def _read(path: Path, label: str) -> Optional[Record]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("[%s] Unreadable file %s: %s", label, path, e)
            return None

        try:
            return event_record_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "[%s] Corrupt file %s (%d validation error(s)); treating as absent",
                label,
                path,
                e.error_count(),
            )
            return None

    # ------------------------------------------------------------------ #
    # Writes
    def write_live(self, record: Record) -> Path:
        """Unconditionally overwrite the live record for this source."""
        path = self.live_dir / self._filename(record.entity, record.event_kind)
        self._write(path, record)
        logger.info(
            "%s Wrote %s (%s)",
            {"fresh": "✓", "stale": "⚠"}.get(record.status, "✗"),
            path.name,
            record.status,
        )
        return path

    def write_lkg(self, record: Record) -> bool:
        """Back up a Fresh record to the vault. Anything else is refused (returns ``False``)."""
        if not isinstance(record, FreshRecord):
            logger.warning(
                "[LKG] Refusing to write %s record to vault for %s.%s",
                record.status,
                record.entity,
                record.event_kind,
            )
            return False
        path = self.lkg_dir / self._filename(record.entity, record.event_kind)
        self._write(path, record)
        logger.info("  + Backed up to %s/%s", self.lkg_dir.name, path.name)
        return True

    @staticmethod
    def _write(path: Path, record: Record) -> None:
        """Atomic replace: readers never see a half-written document."""
        payload = json.dumps(record.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreWriteError(f"Cannot write {path}: {e}") from e
