import sys

from chatrelay import config
from chatrelay.db import create_db_engine
from chatrelay.history import list_sessions, list_turns


def render_history(pg_engine, user_id: int) -> str:
    lines = []
    for chat_session in list_sessions(pg_engine, user_id):
        lines.append(f"chat {chat_session['chat_id']} ({chat_session['timestamp']}): {chat_session['query']}")
        for turn in list_turns(pg_engine, chat_session["chat_id"]):
            lines.append(f"  [{turn['sender']}] {turn['text']}")
        lines.append("------------")
    return "\n".join(lines)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1 or not argv[0].isdigit():
        print("usage: python preview.py <user_id>", file=sys.stderr)
        return 2

    pg_engine = create_db_engine(config.DATABASE_URL)
    print(render_history(pg_engine, int(argv[0])))
    return 0


if __name__ == "__main__":
    sys.exit(main())
