import unittest

from sqlmodel import Session, select

from chatrelay.feedback import parse_rating, record_comment, record_rating
from chatrelay.models import Feedback, Rating
from tests.base import DatabaseTestCase


class ParseRatingTests(unittest.TestCase):
    def test_accepts_any_case(self) -> None:
        self.assertIs(parse_rating("upvote"), Rating.UPVOTE)
        self.assertIs(parse_rating(" DOWNVOTE "), Rating.DOWNVOTE)

    def test_rejects_unknown_values(self) -> None:
        for value in ("5 stars", "", None, 1):
            with self.assertRaises(ValueError):
                parse_rating(value)


class RecordFeedbackTests(DatabaseTestCase):
    def _feedback(self):
        with Session(self.pg_engine) as session:
            return session.exec(select(Feedback).order_by(Feedback.id)).all()

    def test_rating_is_stored_against_chat(self) -> None:
        record_rating(self.pg_engine, 3, 42, Rating.UPVOTE)

        [row] = self._feedback()
        self.assertEqual((row.user_id, row.chat_id, row.rating, row.comment), (3, 42, "UPVOTE", None))

    def test_comment_is_stored_without_chat(self) -> None:
        feedback_id = record_comment(self.pg_engine, 3, Rating.DOWNVOTE, "too verbose")

        [row] = self._feedback()
        self.assertEqual(row.id, feedback_id)
        self.assertEqual((row.chat_id, row.rating, row.comment), (None, "DOWNVOTE", "too verbose"))


if __name__ == "__main__":
    unittest.main()
