"""
Session management for story editing.

A session carries what the browser would otherwise juggle itself: the stitched
composite, the prompt, every generated version and the latest text analysis.
Sessions live in memory and expire, nothing is persisted.
"""

import uuid
import logging
import threading
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta
from dataclasses import dataclass, field

from storygen.models.manager import ModelManager
from storygen.pipeline.story.catalog import ImageCatalog
from storygen.pipeline.story.types import StoryAnalysis

logger = logging.getLogger(__name__)


class VersionNotFound(LookupError): ...


@dataclass
class StorySession:
    """Represents one user's story being built and edited."""
    session_id: str
    created_at: datetime
    last_accessed: datetime
    stitched_image: Optional[bytes] = None
    story_source: Optional[str] = None
    product_source: Optional[str] = None
    product_caption: Optional[str] = None
    prompt: Optional[str] = None
    versions: List[str] = field(default_factory=list)
    current_version: int = 0
    analysis: Optional[StoryAnalysis] = None
    change_prompt: Optional[str] = None

    @property
    def current_image_url(self) -> Optional[str]:
        if not self.versions:
            return None
        return self.versions[self.current_version]

    def start_versions(self, image_url: str):
        """A fresh generation starts a new history."""
        self.versions = [image_url]
        self.current_version = 0
        self.analysis = None
        self.change_prompt = None

    def add_version(self, image_url: str):
        """Edits append and become current; the old analysis no longer applies."""
        self.versions.append(image_url)
        self.current_version = len(self.versions) - 1
        self.analysis = None
        self.change_prompt = None

    def select_version(self, index: int) -> str:
        if index < 0 or index >= len(self.versions):
            raise VersionNotFound(f"Version {index} does not exist")
        self.current_version = index
        return self.versions[index]


class SessionManager:
    """
    Thread-safe in-memory session storage.

    Endpoints run in the threadpool, so every access goes through the lock.
    """

    def __init__(self, session_timeout_minutes: int = 60):
        self._sessions: Dict[str, StorySession] = {}
        self._lock = threading.Lock()
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def create_session(self, **fields: Any) -> StorySession:
        """Create a new story session and return it."""
        now = datetime.utcnow()
        session = StorySession(session_id=str(uuid.uuid4()), created_at=now, last_accessed=now, **fields)

        with self._lock:
            self._cleanup_expired_sessions()
            self._sessions[session.session_id] = session

        return session

    def get_session(self, session_id: str) -> Optional[StorySession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session:
                if datetime.utcnow() - session.last_accessed > self.session_timeout:
                    del self._sessions[session_id]
                    return None
                session.last_accessed = datetime.utcnow()
            return session

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def _cleanup_expired_sessions(self):
        """Remove expired sessions (called with lock held)."""
        now = datetime.utcnow()
        expired_ids = [
            sid for sid, session in self._sessions.items()
            if now - session.last_accessed > self.session_timeout
        ]

        for sid in expired_ids:
            del self._sessions[sid]

        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired story sessions")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_sessions": len(self._sessions),
                "timeout_minutes": self.session_timeout.total_seconds() / 60,
                "oldest_session_age": (
                    max(
                        (datetime.utcnow() - session.created_at).total_seconds()
                        for session in self._sessions.values()
                    ) if self._sessions else 0
                )
            }

# Global session manager instance
session_manager = SessionManager()

# FastAPI dependency functions
def get_session_manager() -> SessionManager:
    """FastAPI dependency to get the session manager."""
    return session_manager

def get_model_manager() -> ModelManager:
    """FastAPI dependency to get the model manager from app state."""
    from ..main import app_state
    return app_state["model_manager"]

def get_image_catalog() -> ImageCatalog:
    from ..main import app_state
    return app_state["image_catalog"]
