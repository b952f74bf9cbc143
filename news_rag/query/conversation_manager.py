"""
Conversation Manager for Chat Sessions

Session store for chat transcripts: create, append, read, clear and
list recent sessions, with optional persistence to JSON files.
"""

import json
import uuid
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Optional, Any

from ..exceptions import SessionNotFoundError

logger = logging.getLogger(__name__)


class ConversationManager:
    """
    Stores chat sessions and their messages.

    Features:
    - Session creation with unique ids
    - Message append / read / clear per session
    - Most-recent-first session listing
    - Optional persistence to one JSON file per session
    """

    def __init__(
        self,
        enable_persistence: bool = False,
        storage_dir: Optional[str] = None
    ):
        """
        Initialize the conversation manager.

        Args:
            enable_persistence: Write every change to disk and load existing sessions
            storage_dir: Directory for session files (default: data/conversations)
        """
        self.enable_persistence = enable_persistence
        self.storage_dir = Path(storage_dir or 'data/conversations')

        # Session storage: {session_id: {'created_at': str, 'messages': [...]}}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

        if self.enable_persistence:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            self._load_all()

    def create_session(self) -> str:
        """
        Create a new, empty session.

        Returns:
            Unique session ID
        """
        session_id = str(uuid.uuid4())
        with self._lock:
            self.sessions[session_id] = {
                'created_at': datetime.now().isoformat(),
                'messages': []
            }
            self._save(session_id)

        logger.info(f"Created new session: {session_id}")
        return session_id

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self.sessions

    def append_messages(self, session_id: str, messages: List[Dict[str, Any]]) -> None:
        """
        Append messages to a session's transcript.

        Each message needs 'role' and 'content'; a timestamp is added
        when missing.

        Raises:
            SessionNotFoundError: If the session does not exist
            ValueError: If a message lacks role or content
        """
        prepared = []
        for message in messages:
            if 'role' not in message or 'content' not in message:
                raise ValueError("Each message needs 'role' and 'content'")
            entry = dict(message)
            entry.setdefault('timestamp', datetime.now().isoformat())
            prepared.append(entry)

        with self._lock:
            session = self._get(session_id)
            session['messages'].extend(prepared)
            self._save(session_id)

        logger.debug(f"Added {len(prepared)} message(s) to session {session_id}")

    def get_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """
        Get a copy of a session's messages.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        with self._lock:
            return [dict(m) for m in self._get(session_id)['messages']]

    def clear_messages(self, session_id: str) -> None:
        """Remove all messages of a session (unknown sessions are ignored)."""
        with self._lock:
            if session_id not in self.sessions:
                return
            self.sessions[session_id]['messages'] = []
            self._save(session_id)

        logger.info(f"Cleared session {session_id}")

    def list_recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        """
        List the most recently created sessions.

        Returns:
            Up to `limit` dicts with session_id, created_at and messages, newest first
        """
        with self._lock:
            summaries = [
                {
                    'session_id': session_id,
                    'created_at': data['created_at'],
                    'messages': [dict(m) for m in data['messages']],
                }
                for session_id, data in self.sessions.items()
            ]

        summaries.sort(key=lambda s: s['created_at'], reverse=True)
        return summaries[:limit]

    def _get(self, session_id: str) -> Dict[str, Any]:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def _save(self, session_id: str) -> None:
        """Write a session to disk when persistence is enabled."""
        if not self.enable_persistence:
            return

        session_file = self.storage_dir / f"{session_id}.json"
        session_data = {
            'session_id': session_id,
            **self.sessions[session_id]
        }

        temp_file = session_file.with_suffix('.json.tmp')
        with open(temp_file, 'w') as f:
            json.dump(session_data, f, indent=2)
        temp_file.replace(session_file)

    def _load_all(self) -> None:
        """Load every session file in storage_dir; unreadable files are skipped."""
        loaded = 0
        for session_file in self.storage_dir.glob('*.json'):
            try:
                with open(session_file, 'r') as f:
                    session_data = json.load(f)
                self.sessions[session_data['session_id']] = {
                    'created_at': session_data['created_at'],
                    'messages': session_data.get('messages', [])
                }
                loaded += 1
            except (json.JSONDecodeError, KeyError, OSError) as e:
                logger.error(f"Error loading session file {session_file}: {e}")

        if loaded:
            logger.info(f"Loaded {loaded} session(s) from {self.storage_dir}")
