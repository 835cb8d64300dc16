"""Chat session records and transcript persistence."""

import os
import json
import tempfile
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Dict, Any
import uuid
import structlog

from .transcript import Transcript


logger = structlog.get_logger()


class Session:
    """A chat session and the transcript it produced."""

    def __init__(self, session_id: str, transcript: Optional[Transcript] = None):
        self.id = session_id
        self.created_at = datetime.now().isoformat()
        self.transcript = transcript if transcript is not None else Transcript()
        self.metadata: Dict[str, Any] = {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to dictionary for serialization."""
        return {
            "id": self.id,
            "created_at": self.created_at,
            "messages": self.transcript.to_list(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """Create session from dictionary."""
        session = cls(
            session_id=data["id"],
            transcript=Transcript.from_list(data.get("messages", [])),
        )
        session.created_at = data["created_at"]
        session.metadata = data.get("metadata", {})
        return session


class SessionManager:
    """Creates sessions and keeps their transcripts on disk."""

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or "~/.sohbet/sessions").expanduser()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _generate_uuid(self) -> str:
        """Time-sortable id where the interpreter has uuid7, random otherwise."""
        factory = getattr(uuid, "uuid7", uuid.uuid4)
        return str(factory())

    def _session_file(self, session_id: str) -> Path:
        return self.base_path / f"{session_id}.json"

    def _atomic_write(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Atomically write data to file."""
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            mode="w", dir=file_path.parent, delete=False, suffix=".tmp", encoding="utf-8"
        ) as tmp_file:
            json.dump(data, tmp_file, indent=2, ensure_ascii=False)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
            tmp_path = tmp_file.name

        os.replace(tmp_path, file_path)

    def create_session(self, transcript: Optional[Transcript] = None) -> Session:
        """Create a new session, optionally bound to an existing transcript."""
        session = Session(f"session_{self._generate_uuid()}", transcript)
        logger.info("Created new session", session_id=session.id)
        return session

    def save_session(self, session: Session) -> Path:
        """Save session to disk."""
        session_file = self._session_file(session.id)
        session.metadata["last_saved"] = datetime.now().isoformat()
        try:
            self._atomic_write(session_file, session.to_dict())
        except Exception as e:
            logger.error("Failed to save session", session_id=session.id, error=str(e))
            raise

        logger.info(
            "Session saved",
            session_id=session.id,
            message_count=len(session.transcript),
        )
        return session_file

    def load_session(self, session_id: str) -> Optional[Session]:
        """Load a session from disk, or None if it is missing or unreadable."""
        session_file = self._session_file(session_id)
        if not session_file.exists():
            return None

        try:
            with open(session_file, "r", encoding="utf-8") as f:
                return Session.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to load session", session_id=session_id, error=str(e))
            return None

    def list_sessions(self) -> List[Dict[str, Any]]:
        """Summaries of saved sessions, most recently saved first."""
        sessions = []
        for session_file in self.base_path.glob("session_*.json"):
            try:
                with open(session_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.error(
                    "Failed to read session file", file=str(session_file), error=str(e)
                )
                continue

            messages = data.get("messages", [])
            sessions.append(
                {
                    "id": data.get("id", session_file.stem),
                    "created_at": data.get("created_at"),
                    "last_saved": data.get("metadata", {}).get("last_saved", ""),
                    "message_count": len(messages),
                    "first_message": messages[0]["text"] if messages else None,
                }
            )

        sessions.sort(key=lambda x: x.get("last_saved") or "", reverse=True)
        return sessions
