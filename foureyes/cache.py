"""
Snapshot cache for GitHub API responses.

Snapshots are append-only: every fetch adds a new version under its key and
lookups return the version with the latest fetch time. A missing snapshot
is ``None``, never an exception.
"""

import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from foureyes.types.github import format_timestamp, require_timestamp
from foureyes.types.verification import CURRENT_SCHEMA_VERSION


class EntityType(str, Enum):
    """Kinds of cached GitHub data."""

    PR_METADATA = "pr_metadata"
    PR_REVIEWS = "pr_reviews"
    PR_COMMITS = "pr_commits"
    COMMIT_PRS = "commit_prs"
    COMMIT = "commit"
    COMPARE = "compare"


PR_ENTITY_TYPES = (EntityType.PR_METADATA, EntityType.PR_REVIEWS, EntityType.PR_COMMITS)


@dataclass(frozen=True)
class SnapshotKey:
    """(repository, entity type, entity id). Compare diffs use the head SHA as id."""

    repository: str
    entity_type: EntityType
    entity_id: str

    @classmethod
    def for_pr(cls, repository: str, entity_type: EntityType, number: int) -> "SnapshotKey":
        return cls(repository, entity_type, str(number))

    def __str__(self) -> str:
        return f"{self.repository}:{self.entity_type.value}:{self.entity_id}"


@dataclass(frozen=True)
class Snapshot:
    """One stored version of a GitHub response."""

    key: SnapshotKey
    payload: Any
    fetched_at: datetime
    schema_version: int = CURRENT_SCHEMA_VERSION

    @property
    def is_current(self) -> bool:
        return self.schema_version >= CURRENT_SCHEMA_VERSION


class SnapshotCache(Protocol):
    """Storage interface for snapshots."""

    def put(
        self,
        key: SnapshotKey,
        payload: Any,
        fetched_at: datetime | None = None,
        schema_version: int = CURRENT_SCHEMA_VERSION,
    ) -> Snapshot:
        """Store a new version. Never replaces an existing one."""
        ...

    def get(self, key: SnapshotKey) -> Snapshot | None:
        """Return the freshest version, or None."""
        ...

    def history(self, key: SnapshotKey) -> list[Snapshot]:
        """Return every version, freshest first."""
        ...


def _freeze(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySnapshotCache:
    """
    Process-local snapshot cache.

    Payloads are stored serialized, so callers can never mutate a stored
    snapshot through a returned object.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._versions: dict[SnapshotKey, list[tuple[datetime, int, int, str]]] = {}
        self._sequence = 0

    def put(
        self,
        key: SnapshotKey,
        payload: Any,
        fetched_at: datetime | None = None,
        schema_version: int = CURRENT_SCHEMA_VERSION,
    ) -> Snapshot:
        fetched_at = fetched_at or _now()
        frozen = _freeze(payload)
        with self._lock:
            self._sequence += 1
            self._versions.setdefault(key, []).append(
                (fetched_at, self._sequence, schema_version, frozen)
            )
        return Snapshot(key, json.loads(frozen), fetched_at, schema_version)

    def get(self, key: SnapshotKey) -> Snapshot | None:
        versions = self.history(key)
        return versions[0] if versions else None

    def history(self, key: SnapshotKey) -> list[Snapshot]:
        with self._lock:
            rows = list(self._versions.get(key, []))
        rows.sort(key=lambda r: (r[0], r[1]), reverse=True)
        return [Snapshot(key, json.loads(frozen), at, version) for at, _, version, frozen in rows]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._versions.values())


class JsonLinesSnapshotCache:
    """
    File-backed snapshot cache.

    Each snapshot is one JSON line appended to ``file_path``. The file is
    read once on construction and kept indexed in memory afterwards.

    Args:
        file_path: Path of the JSON-lines file; created if missing
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)
        self._lock = threading.Lock()
        self._index = InMemorySnapshotCache()
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _load(self) -> None:
        if not self._file_path.exists():
            return
        with self._file_path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                row = json.loads(line)
                key = SnapshotKey(
                    row["repository"], EntityType(row["entityType"]), row["entityId"]
                )
                self._index.put(
                    key,
                    row["payload"],
                    require_timestamp(row["fetchedAt"]),
                    row.get("schemaVersion", CURRENT_SCHEMA_VERSION),
                )

    def put(
        self,
        key: SnapshotKey,
        payload: Any,
        fetched_at: datetime | None = None,
        schema_version: int = CURRENT_SCHEMA_VERSION,
    ) -> Snapshot:
        fetched_at = fetched_at or _now()
        row = {
            "repository": key.repository,
            "entityType": key.entity_type.value,
            "entityId": key.entity_id,
            "fetchedAt": format_timestamp(fetched_at),
            "schemaVersion": schema_version,
            "payload": payload,
        }
        line = json.dumps(row, sort_keys=True)
        with self._lock:
            with self._file_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
            return self._index.put(key, payload, fetched_at, schema_version)

    def get(self, key: SnapshotKey) -> Snapshot | None:
        return self._index.get(key)

    def history(self, key: SnapshotKey) -> list[Snapshot]:
        return self._index.history(key)


def get_current(cache: SnapshotCache, key: SnapshotKey) -> Snapshot | None:
    """Freshest snapshot if it was written with the current schema, else None."""
    snapshot = cache.get(key)
    if snapshot is None or not snapshot.is_current:
        return None
    return snapshot


def find_compare(
    cache: SnapshotCache, repository: str, base_sha: str, head_sha: str
) -> Snapshot | None:
    """Freshest compare snapshot for ``base_sha...head_sha``, any schema version."""
    key = SnapshotKey(repository, EntityType.COMPARE, head_sha)
    for snapshot in cache.history(key):
        if snapshot.payload.get("baseSha") == base_sha:
            return snapshot
    return None
