import unittest
from unittest import mock

from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from chatrelay.conversation_log import log_turn
from chatrelay.models import ChatRecord
from tests.base import DatabaseTestCase, RecordingMetrics


class LogTurnTests(DatabaseTestCase):
    def _rows(self):
        with Session(self.pg_engine) as session:
            return session.exec(select(ChatRecord).order_by(ChatRecord.id)).all()

    def test_new_conversation_takes_id_of_first_row(self) -> None:
        chat_id = log_turn(self.pg_engine, 4, None, "hi", "hello")

        rows = self._rows()
        self.assertIsNotNone(chat_id)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0].id, chat_id)
        self.assertEqual([r.chat_id for r in rows], [chat_id, chat_id])
        self.assertEqual((rows[0].query, rows[0].response), ("hi", ""))
        self.assertEqual((rows[1].query, rows[1].response), ("", "hello"))
        self.assertEqual({r.user_id for r in rows}, {4})

    def test_follow_up_reuses_chat_id_without_back_patch(self) -> None:
        chat_id = log_turn(self.pg_engine, 4, None, "hi", "hello")
        again = log_turn(self.pg_engine, 4, chat_id, "and then?", "more")

        rows = self._rows()
        self.assertEqual(again, chat_id)
        self.assertEqual(len(rows), 4)
        self.assertEqual([r.chat_id for r in rows], [chat_id] * 4)
        # the follow-up user row keeps its own id distinct from the chat id
        self.assertNotEqual(rows[2].id, chat_id)

    def test_separate_conversations_get_separate_ids(self) -> None:
        first = log_turn(self.pg_engine, 4, None, "a", "b")
        second = log_turn(self.pg_engine, 4, None, "c", "d")

        self.assertNotEqual(first, second)
        self.assertEqual(second, self._rows()[2].id)

    def test_database_failure_returns_none(self) -> None:
        metrics = RecordingMetrics()
        failure = OperationalError("INSERT", {}, Exception("database is gone"))

        with mock.patch.object(Session, "flush", side_effect=failure):
            chat_id = log_turn(self.pg_engine, 4, None, "hi", "hello", metrics=metrics)

        self.assertIsNone(chat_id)
        self.assertEqual(metrics.counters, ["errors.log_turn"])
        self.assertEqual(self._rows(), [])


if __name__ == "__main__":
    unittest.main()
