from typing import List

from sqlmodel import Session, col, func, select

from chatrelay.models import ChatRecord

MISSING_RESPONSE = "AI response missing"


def list_sessions(pg_engine, user_id: int) -> List[dict]:
    """One entry per conversation of the user, opened by its first query, newest first."""
    opening_ids = (
        select(func.min(ChatRecord.id))
        .where(ChatRecord.user_id == user_id, col(ChatRecord.chat_id).is_not(None))
        .group_by(ChatRecord.chat_id)
    )
    with Session(pg_engine) as session:
        openers = session.exec(
            select(ChatRecord).where(col(ChatRecord.id).in_(opening_ids)).order_by(col(ChatRecord.id).desc())
        ).all()

    return [
        {"chat_id": record.chat_id, "query": record.query, "timestamp": record.timestamp}
        for record in openers
    ]


def fold_turns(records: List[ChatRecord]) -> List[dict]:
    """
    Pair consecutive rows back into user and assistant turns.

    Rows are expected to alternate user row, assistant row. The pairing is by
    position only, so a conversation that ever stored two rows of the same
    side in a row comes out mismatched. A trailing user row without its
    partner gets a placeholder answer.
    """
    turns = []
    for i in range(0, len(records), 2):
        user_row = records[i]
        if user_row.query:
            turns.append({"sender": "user", "text": user_row.query, "timestamp": user_row.timestamp})

        if i + 1 < len(records):
            ai_row = records[i + 1]
            if ai_row.response:
                turns.append({"sender": "ai", "text": ai_row.response, "timestamp": ai_row.timestamp})
        else:
            turns.append({"sender": "ai", "text": MISSING_RESPONSE, "timestamp": user_row.timestamp})
    return turns


def list_turns(pg_engine, chat_id: int) -> List[dict]:
    with Session(pg_engine) as session:
        records = session.exec(
            select(ChatRecord).where(ChatRecord.chat_id == chat_id).order_by(col(ChatRecord.id))
        ).all()
    return fold_turns(list(records))
