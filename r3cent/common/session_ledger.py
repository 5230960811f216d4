"""
Session Ledger

Keeps ask sessions and their message transcripts.
Persisted to ~/.r3cent/data/ask_sessions.json (in-memory when no path given).

Transcript order is part of the contract: a turn's user message is
appended before its assistant message, and messages are read back in
append order.
"""

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .schemas import AskMessage, AskRole, AskSession, AskSource

logger = logging.getLogger("r3cent.common.session_ledger")


class SessionNotFoundError(KeyError):
    """Unknown session id, or a session owned by another user"""


class SessionLedger:
    """
    Ask session transcripts.

    Layout on disk:
        {"sessions": [AskSession...], "messages": [AskMessage...]}
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize the ledger.

        Args:
            path: JSON file to persist to; None keeps everything in memory
        """
        self._path = Path(path).expanduser() if path else None
        self._sessions: Dict[str, AskSession] = {}
        self._messages: List[AskMessage] = []
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        """Load ledger from disk"""
        if not self._path or not self._path.exists():
            return

        try:
            with open(self._path) as f:
                data = json.load(f)

            self._sessions = {
                s["id"]: AskSession.model_validate(s)
                for s in data.get("sessions", [])
            }
            self._messages = [
                AskMessage.model_validate(m)
                for m in data.get("messages", [])
            ]
        except (json.JSONDecodeError, IOError, KeyError, ValueError) as e:
            logger.warning("Failed to load session ledger %s: %s", self._path, e)
            self._sessions = {}
            self._messages = []

    def _save(self) -> None:
        """Save ledger to disk"""
        if not self._path:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "sessions": [s.model_dump(mode="json") for s in self._sessions.values()],
            "messages": [m.model_dump(mode="json", by_alias=True) for m in self._messages],
        }
        # Readers never see a half-written file
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self._path)

    def create_session(self, user_id: str, title: Optional[str] = None) -> AskSession:
        session = AskSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=datetime.now(timezone.utc),
            title=title,
        )
        with self._lock:
            self._sessions[session.id] = session
            self._save()
        return session

    def get_session(self, session_id: str, user_id: str) -> AskSession:
        """Raises SessionNotFoundError unless the session belongs to user_id"""
        session = self._sessions.get(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self, user_id: str, limit: int = 20) -> List[AskSession]:
        """Newest sessions first"""
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.user_id == user_id]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions[:limit]

    def append_message(
        self,
        session_id: str,
        role: AskRole,
        text: str,
        sources: Optional[Iterable[AskSource]] = None,
    ) -> AskMessage:
        if session_id not in self._sessions:
            raise SessionNotFoundError(session_id)

        message = AskMessage(
            id=str(uuid.uuid4()),
            session_id=session_id,
            role=AskRole(role).value,
            text=text,
            sources=list(sources or []),
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._messages.append(message)
            self._save()
        return message

    def get_messages(self, session_id: str) -> List[AskMessage]:
        """Messages of one session, in the order they were appended"""
        with self._lock:
            return [m for m in self._messages if m.session_id == session_id]
