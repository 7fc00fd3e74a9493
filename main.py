import base64
import binascii
import json
import time
from typing import Optional

import statsd
import uvicorn
from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from chatrelay import config
from chatrelay.assistant import Attachment, ChatMessage, OpenAIAssistant, create_openai_client
from chatrelay.conversation_log import log_turn
from chatrelay.db import create_db_engine, create_tables
from chatrelay.errors import InvalidCredentials, RetriesExhausted
from chatrelay.feedback import parse_rating, record_comment, record_rating
from chatrelay.history import list_sessions, list_turns
from chatrelay.logging_config import configure_logging
from chatrelay.retry import send_with_retry
from chatrelay.sanitizer import get_cleaner
from chatrelay.sessions import SessionRegistry

DEFAULT_USER_ID = 1


class BadRequest(Exception):
    pass


async def _read_body(req: Request) -> dict:
    raw = await req.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequest("Request body must be valid JSON.")
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object.")
    return body


def _as_int(value, field: str, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise BadRequest(f"{field} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{field} must be an integer.")


def _parse_attachment(image_data, mime_type) -> Optional[Attachment]:
    if not image_data:
        return None
    if not isinstance(image_data, str):
        raise BadRequest("image_data must be a base64 string.")

    # accept plain base64 as well as data:<mime>;base64,<payload>
    if image_data.startswith("data:") and "," in image_data:
        header, image_data = image_data.split(",", 1)
        mime_type = mime_type or header[len("data:"):].split(";", 1)[0]
    if not mime_type:
        raise BadRequest("mime_type is required when image_data is sent.")

    try:
        data = base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError):
        raise BadRequest("image_data is not valid base64.")
    return Attachment(data=data, mime_type=mime_type)


def create_app(
    pg_engine,
    registry: SessionRegistry,
    metrics: statsd.StatsClient,
    cleaner_name: str = config.RESPONSE_CLEANER,
    retry_base_delay: float = config.RETRY_BASE_DELAY,
) -> FastAPI:
    app = FastAPI(title="chat-relay")
    clean = get_cleaner(cleaner_name)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    app.state.pg_engine = pg_engine
    app.state.registry = registry
    app.state.metrics = metrics

    @app.on_event("startup")
    def _create_tables():
        create_tables(pg_engine)

    @app.get("/")
    def _health():
        return { "status": "ok" }

    @app.post("/api/chat")
    async def _chat(req: Request):
        metrics.incr("chat")

        # time it starts handling a request
        start_time = time.time()
        try:
            body = await _read_body(req)
            query = body.get("query")
            if not query or not isinstance(query, str) or not query.strip():
                return JSONResponse(status_code=400, content={ "response": "Query cannot be empty." })

            user_id = _as_int(body.get("userId"), "userId", default=DEFAULT_USER_ID)
            chat_id = _as_int(body.get("currentSessionId"), "currentSessionId")
            attachment = _parse_attachment(body.get("image_data"), body.get("mime_type"))
        except BadRequest as exc:
            return JSONResponse(status_code=400, content={ "response": str(exc) })

        assistant = registry.resolve(user_id)
        try:
            raw_response = await send_with_retry(
                assistant,
                ChatMessage(text=query, attachment=attachment),
                metrics=metrics,
                base_delay=retry_base_delay,
            )
        except (InvalidCredentials, RetriesExhausted) as exc:
            return JSONResponse(status_code=500, content={ "response": str(exc) })
        except Exception as exc:
            logger.exception("Chat processing failed for user {}: {}", user_id, exc)
            return JSONResponse(status_code=500, content={ "response": "Sorry, I couldn't process your request due to an internal error." })

        chatbot_response = clean(raw_response)
        # the database driver is blocking, keep it off the event loop
        chat_id = await run_in_threadpool(log_turn, pg_engine, user_id, chat_id, query, chatbot_response, metrics=metrics)

        # log time it took to handle request
        metrics.timing("chat.timed", (time.time() - start_time) * 1000)

        return { "response": chatbot_response, "chatId": chat_id }

    @app.post("/api/chat/reset")
    async def _reset_chat_session(req: Request):
        try:
            body = await _read_body(req)
            user_id = _as_int(body.get("userId"), "userId", default=DEFAULT_USER_ID)
        except BadRequest as exc:
            return JSONResponse(status_code=400, content={ "message": str(exc) })

        if registry.clear(user_id):
            return { "message": "Session cleared." }
        return { "message": "No session found to clear." }

    @app.post("/api/feedback/comment")
    async def _feedback_comment(req: Request):
        try:
            body = await _read_body(req)
            if not body.get("userId") or not body.get("rating"):
                return JSONResponse(status_code=400, content={ "message": "User ID and rating are required." })
            user_id = _as_int(body.get("userId"), "userId")
            rating = parse_rating(body.get("rating"))
        except BadRequest as exc:
            return JSONResponse(status_code=400, content={ "message": str(exc) })
        except ValueError:
            return JSONResponse(status_code=400, content={ "message": "Rating must be UPVOTE or DOWNVOTE." })

        comment = body.get("comment")
        if comment is not None and not isinstance(comment, str):
            comment = str(comment)

        try:
            record_comment(pg_engine, user_id, rating, comment)
        except SQLAlchemyError as exc:
            metrics.incr("errors.feedback")
            logger.error("Error logging feedback: {}", exc)
            return JSONResponse(status_code=500, content={ "message": "Failed to log feedback to database." })

        metrics.incr("feedback.comment")
        return { "message": "Feedback logged successfully." }

    @app.post("/api/feedback/rate")
    async def _feedback_rate(req: Request):
        try:
            body = await _read_body(req)
            if not body.get("userId") or not body.get("chatId") or not body.get("rating"):
                return JSONResponse(status_code=400, content={ "message": "User ID, Chat ID, and rating are required." })
            user_id = _as_int(body.get("userId"), "userId")
            chat_id = _as_int(body.get("chatId"), "chatId")
            rating = parse_rating(body.get("rating"))
        except BadRequest as exc:
            return JSONResponse(status_code=400, content={ "message": str(exc) })
        except ValueError:
            return JSONResponse(status_code=400, content={ "message": "Rating must be UPVOTE or DOWNVOTE." })

        try:
            record_rating(pg_engine, user_id, chat_id, rating)
        except SQLAlchemyError as exc:
            metrics.incr("errors.feedback")
            logger.error("Error logging rating: {}", exc)
            return JSONResponse(status_code=500, content={ "message": "Failed to log rating to database." })

        metrics.incr("feedback.rate")
        return { "message": "Rating logged successfully." }

    @app.get("/api/history")
    def _history(userId: Optional[str] = None):
        try:
            user_id = _as_int(userId, "userId")
        except BadRequest as exc:
            return JSONResponse(status_code=400, content={ "message": str(exc) })
        if user_id is None:
            return JSONResponse(status_code=400, content={ "message": "User ID is required." })

        try:
            return list_sessions(pg_engine, user_id)
        except SQLAlchemyError as exc:
            logger.error("Error fetching chat history for user {}: {}", user_id, exc)
            return JSONResponse(status_code=500, content={ "message": "Failed to fetch chat history." })

    @app.get("/api/history/{chat_id}")
    def _history_turns(chat_id: str):
        try:
            chat_id = _as_int(chat_id, "chatId")
        except BadRequest as exc:
            return JSONResponse(status_code=400, content={ "message": str(exc) })

        try:
            return list_turns(pg_engine, chat_id)
        except SQLAlchemyError as exc:
            logger.error("Error fetching chat {}: {}", chat_id, exc)
            return JSONResponse(status_code=500, content={ "message": "Failed to fetch chat messages." })

    return app


def build_app() -> FastAPI:
    configure_logging(config.LOG_LEVEL)

    pg_engine = create_db_engine(config.DATABASE_URL)
    metrics = statsd.StatsClient(host=config.GRAPHITE_HOST, port=config.GRAPHITE_HOST_PORT, prefix="chatrelay")
    openai_client = create_openai_client(config.API_KEY, config.AI_BASE_URL)

    def _new_assistant(user_id: int) -> OpenAIAssistant:
        return OpenAIAssistant(
            client=openai_client,
            user_id=user_id,
            model=config.AI_MODEL,
            max_output_tokens=config.MAX_OUTPUT_TOKENS,
            metrics=metrics,
        )

    registry = SessionRegistry(_new_assistant, metrics=metrics)
    return create_app(pg_engine, registry, metrics)


app = build_app()

if __name__ == "__main__":
    logger.info("AI mode: {} via {}", config.AI_MODEL, config.AI_BASE_URL)
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
