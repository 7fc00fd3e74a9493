from typing import Optional

import statsd
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from chatrelay.models import ChatRecord


def log_turn(
    pg_engine,
    user_id: int,
    chat_id: Optional[int],
    query: str,
    response: str,
    metrics: Optional[statsd.StatsClient] = None,
) -> Optional[int]:
    """
    Store one exchange as two rows, the user's query then the assistant's response.

    A new conversation (chat_id is None) takes the id of its own first row as
    its chat id. Both rows are written in one transaction. Failures are logged
    and reported as None so the caller can still hand the answer to the user.
    """
    try:
        with Session(pg_engine) as session:
            user_turn = ChatRecord(user_id=user_id, chat_id=chat_id, query=query, response="")
            session.add(user_turn)
            session.flush()

            if chat_id is None:
                # the row id is only known after the insert, point the row at itself
                chat_id = user_turn.id
                user_turn.chat_id = chat_id
                session.add(user_turn)

            assistant_turn = ChatRecord(user_id=user_id, chat_id=chat_id, query="", response=response)
            session.add(assistant_turn)
            session.commit()
    except SQLAlchemyError as exc:
        if metrics is not None:
            metrics.incr("errors.log_turn")
        logger.error("Database logging failed for user {}: {}", user_id, exc)
        return None

    logger.info("AI response logged for user {}. Chat ID: {}", user_id, chat_id)
    return chat_id
