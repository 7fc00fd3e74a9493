import unittest
from datetime import datetime

from sqlmodel import Session

from chatrelay.history import MISSING_RESPONSE, fold_turns, list_sessions, list_turns
from chatrelay.conversation_log import log_turn
from chatrelay.models import ChatRecord
from tests.base import DatabaseTestCase


def _record(query, response, chat_id=1):
    return ChatRecord(user_id=1, chat_id=chat_id, query=query, response=response, timestamp=datetime(2024, 1, 1))


class FoldTurnsTests(unittest.TestCase):
    def test_odd_row_count_gets_placeholder_answer(self) -> None:
        records = [_record("hi", ""), _record("", "hello"), _record("bye", "")]

        turns = fold_turns(records)

        self.assertEqual(
            [(t["sender"], t["text"]) for t in turns],
            [("user", "hi"), ("ai", "hello"), ("user", "bye"), ("ai", MISSING_RESPONSE)],
        )

    def test_empty_fields_are_skipped(self) -> None:
        records = [_record("", ""), _record("", "only answer")]

        self.assertEqual([(t["sender"], t["text"]) for t in fold_turns(records)], [("ai", "only answer")])

    def test_no_rows(self) -> None:
        self.assertEqual(fold_turns([]), [])


class HistoryQueryTests(DatabaseTestCase):
    def _insert(self, *records):
        with Session(self.pg_engine) as session:
            for record in records:
                session.add(record)
                session.commit()

    def test_list_sessions_newest_first_with_opening_query(self) -> None:
        first = log_turn(self.pg_engine, 1, None, "first question", "a1")
        other_user = log_turn(self.pg_engine, 2, None, "not mine", "x")
        log_turn(self.pg_engine, 1, first, "follow up", "a2")
        second = log_turn(self.pg_engine, 1, None, "second question", "b1")

        sessions = list_sessions(self.pg_engine, 1)

        self.assertEqual([s["chat_id"] for s in sessions], [second, first])
        self.assertEqual([s["query"] for s in sessions], ["second question", "first question"])
        self.assertNotIn(other_user, [s["chat_id"] for s in sessions])
        self.assertIsInstance(sessions[0]["timestamp"], datetime)

    def test_list_sessions_orders_by_opening_row_not_latest_activity(self) -> None:
        older = log_turn(self.pg_engine, 1, None, "older", "a")
        newer = log_turn(self.pg_engine, 1, None, "newer", "b")
        log_turn(self.pg_engine, 1, older, "older again", "c")

        self.assertEqual([s["chat_id"] for s in list_sessions(self.pg_engine, 1)], [newer, older])

    def test_rows_without_chat_id_are_ignored(self) -> None:
        self._insert(ChatRecord(user_id=1, chat_id=None, query="orphan", response=""))

        self.assertEqual(list_sessions(self.pg_engine, 1), [])

    def test_list_turns_rebuilds_conversation(self) -> None:
        chat_id = log_turn(self.pg_engine, 1, None, "hi", "hello")
        log_turn(self.pg_engine, 1, chat_id, "how are you", "fine")
        log_turn(self.pg_engine, 1, None, "elsewhere", "ignored")

        turns = list_turns(self.pg_engine, chat_id)

        self.assertEqual(
            [(t["sender"], t["text"]) for t in turns],
            [("user", "hi"), ("ai", "hello"), ("user", "how are you"), ("ai", "fine")],
        )

    def test_list_turns_with_missing_partner_row(self) -> None:
        chat_id = log_turn(self.pg_engine, 1, None, "hi", "hello")
        self._insert(ChatRecord(user_id=1, chat_id=chat_id, query="bye", response=""))

        turns = list_turns(self.pg_engine, chat_id)

        self.assertEqual(turns[-1]["text"], MISSING_RESPONSE)
        self.assertEqual(len(turns), 4)

    def test_unknown_chat(self) -> None:
        self.assertEqual(list_turns(self.pg_engine, 12345), [])


if __name__ == "__main__":
    unittest.main()
