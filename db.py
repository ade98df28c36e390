from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

from sqlmodel import Field, Session, SQLModel, create_engine, select


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _attempt_list(attempts: Mapping[int, int]) -> list[int]:
    # Level indices are 0-based and contiguous; store counts in level order.
    return [int(attempts[index]) for index in sorted(attempts)]


def _session_sort_key(session: dict[str, Any]) -> tuple[Any, Any]:
    return (session["total_attempts"], session["created_at"])


@dataclass
class PlayerRecord:
    id: str
    handle: str
    created_at: str


@dataclass
class SessionRecord:
    id: str
    player_id: str
    generator: str
    level_count: int
    attempts: list[int]
    total_attempts: int
    created_at: str


class JsonResultRepository:
    def __init__(self, path: str | Path, schema_version: int = 1):
        self.path = Path(path)
        self.schema_version = schema_version
        self._ensure_store()

    def _empty_doc(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "players": {},
            "sessions": {},
        }

    def _ensure_store(self) -> None:
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write_doc(self._empty_doc())

    def _read_doc(self) -> dict[str, Any]:
        if not self.path.exists():
            return self._empty_doc()
        raw = self.path.read_text(encoding="utf-8").strip()
        if not raw:
            return self._empty_doc()
        doc = json.loads(raw)
        doc.setdefault("schema_version", self.schema_version)
        doc.setdefault("players", {})
        doc.setdefault("sessions", {})
        return doc

    def _write_doc(self, doc: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(doc, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    # Player ops
    def get_player(self, player_id: str) -> dict[str, Any] | None:
        return self._read_doc()["players"].get(player_id)

    def get_or_create_player(self, handle: str) -> dict[str, Any]:
        doc = self._read_doc()
        for player in doc["players"].values():
            if player.get("handle") == handle:
                return player

        record = asdict(PlayerRecord(id=str(uuid4()), handle=handle, created_at=_utc_now_iso()))
        doc["players"][record["id"]] = record
        self._write_doc(doc)
        return record

    # Session ops
    def record_session(
        self,
        player_id: str,
        generator: str,
        attempts: Mapping[int, int],
    ) -> dict[str, Any]:
        doc = self._read_doc()
        counts = _attempt_list(attempts)
        record = asdict(
            SessionRecord(
                id=str(uuid4()),
                player_id=player_id,
                generator=generator,
                level_count=len(counts),
                attempts=counts,
                total_attempts=sum(counts),
                created_at=_utc_now_iso(),
            )
        )
        doc["sessions"][record["id"]] = record
        self._write_doc(doc)
        return record

    def get_session(self, session_id: str) -> dict[str, Any]:
        session = self._read_doc()["sessions"].get(session_id)
        if session is None:
            raise KeyError(f"Unknown session_id: {session_id}")
        return session

    def top_sessions(
        self,
        generator: str | None = None,
        level_count: int | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        items = list(self._read_doc()["sessions"].values())
        if generator is not None:
            items = [s for s in items if s.get("generator") == generator]
        if level_count is not None:
            items = [s for s in items if s.get("level_count") == level_count]
        items.sort(key=_session_sort_key)
        return items[:limit]


# ---------------------------------------------------------------------------
# SQLModel tables for SqliteResultRepository
# ---------------------------------------------------------------------------


class PlayerModel(SQLModel, table=True):
    __tablename__ = "players"
    id: str = Field(primary_key=True)
    handle: str = Field(index=True)
    created_at: str


class SessionModel(SQLModel, table=True):
    __tablename__ = "sessions"
    id: str = Field(primary_key=True)
    player_id: str
    generator: str
    level_count: int
    attempts_json: str = Field(sa_column_kwargs={"name": "attempts"})
    total_attempts: int
    created_at: str


def _session_dict(row: SessionModel) -> dict[str, Any]:
    return {
        "id": row.id,
        "player_id": row.player_id,
        "generator": row.generator,
        "level_count": row.level_count,
        "attempts": json.loads(row.attempts_json),
        "total_attempts": row.total_attempts,
        "created_at": row.created_at,
    }


class SqliteResultRepository:
    """SQLite-backed repository using SQLModel. Same interface as JsonResultRepository."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite:///{self.path}", connect_args={"check_same_thread": False})
        SQLModel.metadata.create_all(self.engine)

    # Player ops
    def get_player(self, player_id: str) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            row = session.get(PlayerModel, player_id)
            if row is None:
                return None
            return {"id": row.id, "handle": row.handle, "created_at": row.created_at}

    def get_or_create_player(self, handle: str) -> dict[str, Any]:
        with Session(self.engine) as session:
            row = session.exec(select(PlayerModel).where(PlayerModel.handle == handle)).first()
            if row is None:
                row = PlayerModel(id=str(uuid4()), handle=handle, created_at=_utc_now_iso())
                session.add(row)
                session.commit()
                session.refresh(row)
            return {"id": row.id, "handle": row.handle, "created_at": row.created_at}

    # Session ops
    def record_session(
        self,
        player_id: str,
        generator: str,
        attempts: Mapping[int, int],
    ) -> dict[str, Any]:
        counts = _attempt_list(attempts)
        with Session(self.engine) as session:
            row = SessionModel(
                id=str(uuid4()),
                player_id=player_id,
                generator=generator,
                level_count=len(counts),
                attempts_json=json.dumps(counts),
                total_attempts=sum(counts),
                created_at=_utc_now_iso(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _session_dict(row)

    def get_session(self, session_id: str) -> dict[str, Any]:
        with Session(self.engine) as session:
            row = session.get(SessionModel, session_id)
            if row is None:
                raise KeyError(f"Unknown session_id: {session_id}")
            return _session_dict(row)

    def top_sessions(
        self,
        generator: str | None = None,
        level_count: int | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        with Session(self.engine) as session:
            stmt = select(SessionModel)
            if generator is not None:
                stmt = stmt.where(SessionModel.generator == generator)
            if level_count is not None:
                stmt = stmt.where(SessionModel.level_count == level_count)
            items = [_session_dict(row) for row in session.exec(stmt).all()]
        items.sort(key=_session_sort_key)
        return items[:limit]

    def close(self) -> None:
        self.engine.dispose()


def open_repo(path: str | Path):
    """Return SqliteResultRepository for .db paths, JsonResultRepository otherwise."""
    path = Path(path)
    if path.suffix == ".db":
        return SqliteResultRepository(path)
    return JsonResultRepository(path)
