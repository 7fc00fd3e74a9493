from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Text
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Rating(str, Enum):
    UPVOTE = "UPVOTE"
    DOWNVOTE = "DOWNVOTE"


class ChatRecord(SQLModel, table=True):
    __tablename__ = "chats"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    chat_id: Optional[int] = Field(default=None, index=True) # id of the conversation's first row
    query: str = Field(default="", sa_type=Text) # empty for assistant turns
    response: str = Field(default="", sa_type=Text) # empty for user turns
    timestamp: datetime = Field(default_factory=utc_now)


class Feedback(SQLModel, table=True):
    __tablename__ = "feedback"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int
    chat_id: Optional[int] = Field(default=None)
    rating: str # UPVOTE | DOWNVOTE
    comment: Optional[str] = Field(default=None, sa_type=Text)
    timestamp: datetime = Field(default_factory=utc_now)
