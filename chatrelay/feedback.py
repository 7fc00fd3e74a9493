from typing import Optional

from loguru import logger
from sqlmodel import Session

from chatrelay.models import Feedback, Rating


def parse_rating(value) -> Rating:
    """Accepts any casing of UPVOTE / DOWNVOTE, raises ValueError otherwise."""
    if not isinstance(value, str):
        raise ValueError(f"invalid rating {value!r}")
    return Rating(value.strip().upper())


def record_feedback(
    pg_engine,
    user_id: int,
    rating: Rating,
    chat_id: Optional[int] = None,
    comment: Optional[str] = None,
) -> int:
    with Session(pg_engine) as session:
        feedback = Feedback(user_id=user_id, chat_id=chat_id, rating=rating.value, comment=comment)
        session.add(feedback)
        session.commit()
        session.refresh(feedback)

    logger.info("Feedback logged: user {}, chat ID {}, rating {}", user_id, chat_id, rating.value)
    return feedback.id


def record_rating(pg_engine, user_id: int, chat_id: int, rating: Rating) -> int:
    return record_feedback(pg_engine, user_id, rating, chat_id=chat_id)


def record_comment(pg_engine, user_id: int, rating: Rating, comment: Optional[str]) -> int:
    return record_feedback(pg_engine, user_id, rating, comment=comment)
