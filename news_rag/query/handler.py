"""
Chat Handler

Session-aware chat flow on top of the RAG pipeline: records messages in
the session store, keeps a short-lived cache of each transcript and
broadcasts every generated answer once it has been stored.
"""

import logging
from datetime import datetime
from typing import List, Dict, Optional, Any

from ..exceptions import SessionNotFoundError
from ..main_pipeline import RAGPipeline
from .broadcast import BroadcastChannel, NullBroadcaster
from .cache import TTLCache
from .conversation_manager import ConversationManager

logger = logging.getLogger(__name__)

BOT_RESPONSE_EVENT = 'bot_response'


def _cache_key(session_id: str) -> str:
    return f"session:{session_id}"


class ChatHandler:
    """
    Handles chat sessions and messages.

    The pipeline only answers; storing the transcript, caching it and
    broadcasting the answer all happen here, after a successful answer.
    """

    def __init__(
        self,
        pipeline: RAGPipeline,
        session_store: Optional[ConversationManager] = None,
        cache: Optional[TTLCache] = None,
        broadcaster: Optional[BroadcastChannel] = None,
        cache_ttl: int = 3600
    ):
        """
        Initialize the chat handler.

        Args:
            pipeline: RAG pipeline used to answer messages
            session_store: Session store (default: in-memory ConversationManager)
            cache: Transcript cache (default: in-memory TTLCache)
            broadcaster: Live-update channel (default: no listeners)
            cache_ttl: Transcript cache lifetime in seconds
        """
        self.pipeline = pipeline
        self.session_store = session_store if session_store is not None else ConversationManager()
        self.cache = cache if cache is not None else TTLCache()
        self.broadcaster = broadcaster if broadcaster is not None else NullBroadcaster()
        self.cache_ttl = cache_ttl

    def create_session(self) -> str:
        return self.session_store.create_session()

    def get_session_history(self, session_id: str) -> List[Dict[str, Any]]:
        """
        Get a session's messages, from the cache when possible.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        cached = self.cache.get(_cache_key(session_id))
        if cached is not None:
            return cached

        messages = self.session_store.get_messages(session_id)
        self.cache.set_with_expiry(_cache_key(session_id), messages, self.cache_ttl)
        return messages

    def process_message(self, session_id: str, message: str) -> Dict[str, Any]:
        """
        Answer a user message within a session.

        Args:
            session_id: Existing session id
            message: User message

        Returns:
            {'response': str, 'articles': [...]} as produced by GeneratedAnswer.to_dict()

        Raises:
            SessionNotFoundError: If the session does not exist
            NotReadyError, EmbeddingError, VectorIndexError, GenerationError: Propagated;
                nothing is stored or broadcast in that case
        """
        if not self.session_store.has_session(session_id):
            raise SessionNotFoundError(f"Session not found: {session_id}")

        answer = self.pipeline.answer_query(message)
        result = answer.to_dict()

        self.session_store.append_messages(session_id, [
            {
                'role': 'user',
                'content': message,
            },
            {
                'role': 'assistant',
                'content': answer.text,
                'articles': result['articles'],
            },
        ])

        messages = self.session_store.get_messages(session_id)
        self.cache.set_with_expiry(_cache_key(session_id), messages, self.cache_ttl)

        self.broadcaster.broadcast(BOT_RESPONSE_EVENT, {
            **result,
            'session_id': session_id,
            'timestamp': datetime.now().isoformat(),
        })

        return result

    def clear_session(self, session_id: str) -> None:
        """Clear a session's messages in the store and drop its cached transcript."""
        self.session_store.clear_messages(session_id)
        self.cache.delete(_cache_key(session_id))

    def list_sessions(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent sessions, with messages taken from the cache when present."""
        sessions = self.session_store.list_recent(limit)
        for session in sessions:
            cached = self.cache.get(_cache_key(session['session_id']))
            if cached is not None:
                session['messages'] = cached
        return sessions
