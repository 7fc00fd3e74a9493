from typing import Callable, Dict, Optional

import statsd
from loguru import logger

from chatrelay.assistant import LLMAssistant


class SessionRegistry:
    """
    Maps a user id to the live assistant holding that user's conversation.

    Entries live until `clear` or process exit, there is no size bound or TTL.
    Nothing here is locked. Two first messages from the same user that run
    concurrently can both miss the lookup and each build an assistant, the
    second one stored wins.
    """

    def __init__(self, assistant_factory: Callable[[int], LLMAssistant], metrics: Optional[statsd.StatsClient] = None):
        self.assistant_factory = assistant_factory
        self.metrics = metrics
        self._sessions: Dict[int, LLMAssistant] = {}

    def resolve(self, user_id: int) -> LLMAssistant:
        assistant = self._sessions.get(user_id)
        if assistant is None:
            logger.info("Creating new chat session for user {}", user_id)
            if self.metrics is not None:
                self.metrics.incr("start_session")
            assistant = self.assistant_factory(user_id)
            self._sessions[user_id] = assistant
        return assistant

    def clear(self, user_id: int) -> bool:
        if self._sessions.pop(user_id, None) is None:
            return False

        logger.info("Deleted chat session for user {}", user_id)
        if self.metrics is not None:
            self.metrics.incr("reset_session")
        return True

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
