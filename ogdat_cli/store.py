"""Tracking store for watched datasets.

The watcher keeps one JSON file with three tables:

- ``datasets``: the minimal metadata of every dataset seen on the portal
- ``status``: append-only check results, one row per message, plus one row
  with ``field_id`` null for each insert, update or deletion
- ``heartbeats``: last sign of life per application id

Writes are serialised by an internal lock and persisted atomically (temp
file in the same directory, then rename). Inside ``transaction()`` writes
are buffered in memory and persisted once on exit, or discarded if the
block raises.

Usage:
    from ogdat_cli.store import TrackingStore

    store = TrackingStore(Path(".ogdat/tracking.json"))
    with store.transaction():
        dataset_id, is_new = store.insert_or_update_metadata_info(ckan_id, minimal)
        store.protocol_check(dataset_id, is_new, messages)
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ogdat_cli.document import MinimalMetadata
from ogdat_cli.errors import StoreError
from ogdat_cli.messages import CheckFlag, CheckMessage

logger = logging.getLogger(__name__)

STORE_FORMAT = 1

# Values of "status" on rows that are not check messages
STATUS_INSERTED = "inserted"
STATUS_UPDATED = "updated"
STATUS_DELETED = "deleted"

# Metadata strings are cut to this many characters
MAX_FIELD_LENGTH = 255


def _timestamp() -> str:
    # Fixed width so stored times sort as strings
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _truncate(value: str | None) -> str | None:
    if value is None:
        return None
    return value[:MAX_FIELD_LENGTH]


def _empty_state() -> dict[str, Any]:
    return {"format": STORE_FORMAT, "datasets": [], "status": [], "heartbeats": {}}


@dataclass(frozen=True)
class DataUrl:
    """A stored link that was classified as fetchable."""

    dataset_id: int
    field_id: int
    kind: int
    url: str


class TrackingStore:
    """JSON-file persistence for the watcher."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._state = self._load()
        self._snapshot: dict[str, Any] | None = None
        self._depth = 0

    # =========================================================================
    # File handling
    # =========================================================================

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return _empty_state()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as err:
            raise StoreError(str(self.path), str(err)) from err
        if not isinstance(data, dict) or data.get("format") != STORE_FORMAT:
            raise StoreError(str(self.path), "not a tracking store file")
        state = _empty_state()
        state.update(data)
        return state

    def _persist(self) -> None:
        """Write the state to disk; on failure, reload what the disk holds."""
        if self._depth:
            return
        try:
            self._write()
        except Exception:
            self._state = self._load()
            raise

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(self._state, indent=2, ensure_ascii=False) + "\n"

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tracking_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, self.path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    @contextmanager
    def transaction(self) -> Iterator[TrackingStore]:
        """Buffer writes and persist them once when the block exits.

        If the block raises, every write made inside it is discarded and
        the exception propagates. Nested transactions join the outer one.
        """
        with self._lock:
            if self._depth == 0:
                self._snapshot = copy.deepcopy(self._state)
            self._depth += 1
        try:
            yield self
        except BaseException:
            with self._lock:
                self._depth -= 1
                if self._depth == 0 and self._snapshot is not None:
                    self._state = self._snapshot
                    self._snapshot = None
                    logger.info("Rolled back tracking store transaction")
            raise
        with self._lock:
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None
                self._persist()

    # =========================================================================
    # Datasets
    # =========================================================================

    def _find_dataset(self, ckan_id: str) -> dict[str, Any] | None:
        for row in self._state["datasets"]:
            if row["ckan_id"] == ckan_id:
                return row
        return None

    def insert_or_update_metadata_info(
        self, ckan_id: str, minimal: MinimalMetadata
    ) -> tuple[int, bool]:
        """Record the minimal metadata of a dataset.

        Returns:
            Tuple of (dataset_id, is_new).
        """
        now = _timestamp()
        info = {
            "identifier": _truncate(minimal.identifier),
            "publisher": _truncate(minimal.publisher),
            "maintainer_link": _truncate(minimal.maintainer_link),
            "description": minimal.description,
            "schema_name": _truncate(minimal.schema_name),
            "geographic_bbox": _truncate(minimal.geographic_bbox),
            "geographic_toponym": _truncate(minimal.geographic_toponym),
            "categories": list(minimal.categories),
        }
        with self._lock:
            row = self._find_dataset(ckan_id)
            is_new = row is None
            if row is None:
                datasets = self._state["datasets"]
                dataset_id = max((d["id"] for d in datasets), default=0) + 1
                row = {"id": dataset_id, "ckan_id": ckan_id, "created": now}
                datasets.append(row)
            row.update(info)
            row["updated"] = now
            row["deleted"] = False
            self._state["status"].append(
                {
                    "dataset_id": row["id"],
                    "field_id": None,
                    "status": STATUS_INSERTED if is_new else STATUS_UPDATED,
                    "kind": None,
                    "text": None,
                    "url": None,
                    "hit_time": now,
                }
            )
            self._persist()
            return row["id"], is_new

    def mark_deleted(self, ckan_id: str) -> bool:
        """Flag a dataset as deleted on the portal.

        Returns:
            False if the dataset was never recorded.
        """
        with self._lock:
            row = self._find_dataset(ckan_id)
            if row is None:
                logger.debug("Cannot mark unknown dataset %s as deleted", ckan_id)
                return False
            row["deleted"] = True
            self._state["status"].append(
                {
                    "dataset_id": row["id"],
                    "field_id": None,
                    "status": STATUS_DELETED,
                    "kind": None,
                    "text": None,
                    "url": None,
                    "hit_time": _timestamp(),
                }
            )
            self._persist()
            return True

    def datasets(self) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._state["datasets"])

    # =========================================================================
    # Status rows
    # =========================================================================

    def protocol_check(
        self, dataset_id: int, is_new: bool, messages: Iterable[CheckMessage]
    ) -> int:
        """Append one status row per message, all with the same hit time.

        Returns:
            Number of rows written.
        """
        hit_time = _timestamp()
        rows = [
            {
                "dataset_id": dataset_id,
                "field_id": message.field_id,
                "status": message.status,
                "kind": int(message.kind),
                "text": message.text,
                "url": message.url,
                "hit_time": hit_time,
            }
            for message in messages
        ]
        with self._lock:
            self._state["status"].extend(rows)
            self._persist()
        logger.debug(
            "Recorded %d messages for %s dataset %d",
            len(rows),
            "new" if is_new else "known",
            dataset_id,
        )
        return len(rows)

    def status_rows(self, dataset_id: int | None = None) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._state["status"]
            if dataset_id is not None:
                rows = [r for r in rows if r["dataset_id"] == dataset_id]
            return copy.deepcopy(rows)

    def last_hit(self) -> datetime | None:
        """Time of the last insert or update, None if there was none."""
        with self._lock:
            times = [
                r["hit_time"]
                for r in self._state["status"]
                if r["field_id"] is None and r["status"] != STATUS_DELETED
            ]
        if not times:
            return None
        return max(datetime.fromisoformat(t) for t in times)

    def data_urls(self) -> list[list[DataUrl]]:
        """Fetchable links of the latest check of every dataset.

        Returns:
            One list per dataset, ordered by dataset id.
        """
        with self._lock:
            rows = [
                r
                for r in self._state["status"]
                if r["kind"] is not None and r["kind"] & CheckFlag.FETCHABLE_URL and r["url"]
            ]
        latest: dict[int, str] = {}
        for row in rows:
            if row["hit_time"] > latest.get(row["dataset_id"], ""):
                latest[row["dataset_id"]] = row["hit_time"]

        grouped: dict[int, list[DataUrl]] = {}
        for row in rows:
            if row["hit_time"] != latest[row["dataset_id"]]:
                continue
            grouped.setdefault(row["dataset_id"], []).append(
                DataUrl(row["dataset_id"], row["field_id"], row["kind"], row["url"])
            )
        return [grouped[k] for k in sorted(grouped)]

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def heartbeat(self, app_id: str) -> None:
        with self._lock:
            self._state["heartbeats"][app_id] = _timestamp()
            self._persist()

    def last_heartbeat(self, app_id: str) -> datetime | None:
        with self._lock:
            value = self._state["heartbeats"].get(app_id)
        return datetime.fromisoformat(value) if value else None

    def reset(self) -> None:
        """Delete all datasets, status rows and heartbeats."""
        with self._lock:
            self._state = _empty_state()
            self._persist()
        logger.info("Reset tracking store %s", self.path)
