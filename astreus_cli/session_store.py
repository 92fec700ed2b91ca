"""Durable CRUD over named conversation sessions.

One JSON record per session lives in the sessions directory; a separate
single-line file names the current session.  Every write replaces the
whole file through a temporary sibling so a record is never half written.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import secrets
import time
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .exceptions import SessionError

LOGGER = logging.getLogger(__name__)

Role = Literal["user", "assistant", "system"]
PERSISTED_ROLES = frozenset({"user", "assistant"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _make_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def new_session_id() -> str:
    return _make_id("session")


def new_conversation_handle() -> str:
    return _make_id("graph")


def default_session_name() -> str:
    return f"Chat {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"


class Message(BaseModel):
    """A single transcript entry. Immutable once created.

    On disk the role is stored under ``type``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: Role = Field(
        validation_alias=AliasChoices("role", "type"), serialization_alias="type"
    )
    content: str


class Session(BaseModel):
    """A named conversation and its persisted transcript.

    Records use camelCase keys (``graphId``, ``createdAt``, ``updatedAt``);
    snake_case keys written by earlier releases are still accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    conversation_handle: str | None = Field(
        default=None,
        validation_alias=AliasChoices("graphId", "conversation_handle", "graph_id"),
        serialization_alias="graphId",
    )
    name: str
    created_at: str = Field(
        default_factory=_now_iso,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    updated_at: str = Field(
        default_factory=_now_iso,
        validation_alias=AliasChoices("updatedAt", "updated_at"),
        serialization_alias="updatedAt",
    )
    messages: list[Message] = Field(default_factory=list)
    model: str | None = None
    provider: str | None = None


@dataclass(frozen=True)
class SessionSummary:
    id: str
    name: str
    created_at: str
    updated_at: str
    message_count: int


@dataclass(frozen=True)
class SkippedRecord:
    """A session file that could not be read and was left out of a listing."""

    path: Path
    reason: str


class SessionStore:
    """Manage session records and the current-session pointer."""

    def __init__(self, directory: str | Path, current_path: str | Path) -> None:
        self.directory = Path(directory).expanduser()
        self.current_path = Path(current_path).expanduser()
        self.skipped_records: list[SkippedRecord] = []

    def _record_path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    def _write_atomic(self, target: Path, text: str) -> None:
        temp = target.with_name(f".{target.name}.{uuid4().hex[:8]}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp.write_text(text, encoding="utf-8")
            if os.name == "posix":
                temp.chmod(0o600)
            os.replace(temp, target)
        except OSError as exc:
            if temp.exists():
                temp.unlink()
            raise SessionError(f"Unable to write {target}: {exc}") from exc

    def _write_record(self, session: Session) -> None:
        payload = session.model_dump(mode="json", by_alias=True)
        payload["messages"] = [
            message
            for message in payload["messages"]
            if message["type"] in PERSISTED_ROLES
        ]
        self._write_atomic(
            self._record_path(session.id),
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True),
        )

    def _skip(self, path: Path, reason: str) -> None:
        """Recovery path for unreadable records: note it and move on."""
        self.skipped_records.append(SkippedRecord(path=path, reason=reason))
        LOGGER.warning(
            "session.record.skipped",
            extra={"event": "session.record.skipped", "path": str(path), "reason": reason},
        )

    def _read_record(self, path: Path) -> Session | None:
        try:
            raw: Any = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            self._skip(path, f"unreadable: {exc}")
            return None
        try:
            return Session.model_validate(raw)
        except ValidationError as exc:
            self._skip(path, f"invalid: {exc.error_count()} error(s)")
            return None

    # ------------------------------------------------------------------
    # Current-session pointer
    # ------------------------------------------------------------------

    def current_session_id(self) -> str | None:
        try:
            value = self.current_path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return value or None

    def set_current(self, session_id: str) -> None:
        self._write_atomic(self.current_path, session_id)

    def clear_current(self) -> None:
        self.current_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self,
        name: str | None = None,
        *,
        model: str | None = None,
        provider: str | None = None,
    ) -> Session:
        """Create, persist and select a fresh empty session."""
        now = _now_iso()
        session = Session(
            id=new_session_id(),
            conversation_handle=new_conversation_handle(),
            name=(name or "").strip() or default_session_name(),
            created_at=now,
            updated_at=now,
            model=model,
            provider=provider,
        )
        self._write_record(session)
        self.set_current(session.id)
        LOGGER.info(
            "session.created",
            extra={"event": "session.created", "session_id": session.id},
        )
        return session

    def save(self, session: Session) -> Session:
        """Stamp ``updated_at`` and rewrite the whole record."""
        session.updated_at = _now_iso()
        self._write_record(session)
        return session

    def load(self, session_id: str) -> Session | None:
        path = self._record_path(session_id)
        if not path.exists():
            return None
        session = self._read_record(path)
        if session is None:
            return None
        if not session.conversation_handle:
            session.conversation_handle = new_conversation_handle()
            self._write_record(session)
            LOGGER.info(
                "session.migrated",
                extra={"event": "session.migrated", "session_id": session.id},
            )
        return session

    def list(self) -> list[SessionSummary]:
        """Summaries of every readable record, most recently updated first."""
        self.skipped_records = []
        if not self.directory.is_dir():
            return []
        summaries: list[SessionSummary] = []
        for path in self.directory.glob("*.json"):
            session = self._read_record(path)
            if session is None:
                continue
            summaries.append(
                SessionSummary(
                    id=session.id,
                    name=session.name,
                    created_at=session.created_at,
                    updated_at=session.updated_at,
                    message_count=len(session.messages),
                )
            )
        summaries.sort(key=lambda item: item.updated_at, reverse=True)
        return summaries

    def delete(self, session_id: str) -> bool:
        path = self._record_path(session_id)
        if not path.exists():
            return False
        path.unlink()
        if self.current_session_id() == session_id:
            self.clear_current()
        LOGGER.info(
            "session.deleted",
            extra={"event": "session.deleted", "session_id": session_id},
        )
        return True

    def rename(self, session_id: str, new_name: str) -> bool:
        session = self.load(session_id)
        if session is None:
            return False
        session.name = new_name.strip() or session.name
        self.save(session)
        return True

    def get_or_create_current(self) -> Session:
        """Return the current session, creating one when none loads."""
        current_id = self.current_session_id()
        if current_id:
            session = self.load(current_id)
            if session is not None:
                return session
            LOGGER.info(
                "session.current.missing",
                extra={"event": "session.current.missing", "session_id": current_id},
            )
        return self.create()
