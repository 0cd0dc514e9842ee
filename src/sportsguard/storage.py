"""Persistent record streams: the quality history and the usage runs.

A store owns one ordered stream of JSON records. Callers read it with
``load()``, add one record with ``append()`` and drop old records with
``prune()``; scoring code never touches the filesystem directly.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Callable

from .config import GovernanceConfig, default_config
from .schemas import SCHEMAS, validate_record
from .utils import json_dumps, log_event

logger = logging.getLogger(__name__)

QUALITY_STREAM = "quality_history"
USAGE_STREAM = "usage_runs"


class StoreError(RuntimeError):
    pass


def read_json(path: str | Path) -> Any:
    """Read a JSON file; a missing file reads as ``None``."""
    path = Path(path)
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StoreError(f"{path} is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise StoreError(f"cannot read {path}: {exc}") from exc


def write_json(path: str | Path, payload: Any) -> None:
    """Write JSON atomically (temp file in the same directory, then replace)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_text(json_dumps(payload, indent=2) + "\n", encoding="utf-8")
    os.replace(tmp_path, path)


class HistoryStore:
    """Base store: validation, capping and pruning on top of ``_read``/``_write``."""

    def __init__(self, stream: str, max_entries: int | None = None) -> None:
        if stream not in SCHEMAS:
            raise StoreError(f"unknown stream: {stream}")
        self.stream = stream
        self.schema = SCHEMAS[stream]
        self.max_entries = max_entries

    def _read(self) -> list[Any]:
        raise NotImplementedError

    def _write(self, records: list[dict[str, Any]]) -> None:
        raise NotImplementedError

    def load(self) -> list[dict[str, Any]]:
        records = []
        for index, record in enumerate(self._read()):
            check = validate_record(self.schema, record)
            if not check["ok"]:
                log_event(
                    logger,
                    logging.WARNING,
                    "store_record_skipped",
                    stream=self.stream,
                    index=index,
                    error=check["error"],
                )
                continue
            records.append(record)
        return records

    def append(self, record: dict[str, Any]) -> list[dict[str, Any]]:
        check = validate_record(self.schema, record)
        if not check["ok"]:
            raise StoreError(f"invalid {self.stream} record: {check['error']}")
        records = self.load()
        records.append(record)
        if self.max_entries and len(records) > self.max_entries:
            records = records[-self.max_entries :]
        self._write(records)
        log_event(logger, logging.DEBUG, "store_append", stream=self.stream, size=len(records))
        return records

    def prune(self, keep: Callable[[list[dict[str, Any]]], list[dict[str, Any]]]) -> int:
        """Replace the stream with ``keep(records)``; returns how many were dropped."""
        records = self.load()
        kept = list(keep(records))
        removed = len(records) - len(kept)
        if removed:
            self._write(kept)
            log_event(logger, logging.INFO, "store_pruned", stream=self.stream, removed=removed)
        return removed


class JsonHistoryStore(HistoryStore):
    """One JSON array per file, or a list under ``key`` in a JSON document."""

    def __init__(
        self,
        path: str | Path,
        stream: str,
        *,
        key: str | None = None,
        max_entries: int | None = None,
    ) -> None:
        super().__init__(stream, max_entries)
        self.path = Path(path)
        self.key = key

    def _read(self) -> list[Any]:
        data = read_json(self.path)
        if data is None:
            return []
        if self.key is not None:
            if not isinstance(data, dict):
                raise StoreError(f"{self.path} must hold a JSON object")
            data = data.get(self.key) or []
        if not isinstance(data, list):
            raise StoreError(f"{self.path} must hold a JSON list")
        return data

    def _write(self, records: list[dict[str, Any]]) -> None:
        if self.key is None:
            write_json(self.path, records)
            return
        document = read_json(self.path)
        if not isinstance(document, dict):
            document = {}
        document[self.key] = records
        write_json(self.path, document)


class SqliteHistoryStore(HistoryStore):
    """All streams in one SQLite table, one row per record."""

    def __init__(self, path: str | Path, stream: str, *, max_entries: int | None = None) -> None:
        super().__init__(stream, max_entries)
        self.path = Path(path)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS history_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    stream TEXT NOT NULL,
                    timestamp TEXT,
                    payload TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_history_stream ON history_records(stream, id)"
            )
            conn.commit()
        finally:
            conn.close()

    def _read(self) -> list[Any]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT payload FROM history_records WHERE stream = ? ORDER BY id",
                (self.stream,),
            ).fetchall()
        finally:
            conn.close()
        records = []
        for (payload,) in rows:
            try:
                records.append(json.loads(payload))
            except json.JSONDecodeError:
                log_event(logger, logging.WARNING, "store_row_unreadable", stream=self.stream)
        return records

    def _write(self, records: list[dict[str, Any]]) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM history_records WHERE stream = ?", (self.stream,))
                conn.executemany(
                    "INSERT INTO history_records (stream, timestamp, payload) VALUES (?, ?, ?)",
                    [(self.stream, record.get("timestamp"), json_dumps(record)) for record in records],
                )
        finally:
            conn.close()


def _build_store(config: GovernanceConfig, stream: str, json_path: Path, key: str | None, max_entries: int | None):
    if config.history.backend == "sqlite":
        return SqliteHistoryStore(
            config.paths.resolve("state_db"), stream, max_entries=max_entries
        )
    return JsonHistoryStore(json_path, stream, key=key, max_entries=max_entries)


def quality_history_store(config: GovernanceConfig | None = None) -> HistoryStore:
    cfg = config or default_config()
    return _build_store(
        cfg,
        QUALITY_STREAM,
        cfg.paths.resolve("quality_history"),
        None,
        cfg.history.max_entries,
    )


def usage_store(config: GovernanceConfig | None = None) -> HistoryStore:
    cfg = config or default_config()
    return _build_store(cfg, USAGE_STREAM, cfg.paths.resolve("usage_tracking"), "runs", None)
