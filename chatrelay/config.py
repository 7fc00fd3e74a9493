import os

from dotenv import load_dotenv
from sqlalchemy.engine import URL

load_dotenv()

API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or os.getenv("OPENAI_API_KEY", "")
AI_BASE_URL = os.getenv("AI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
AI_MODEL = os.getenv("AI_MODEL", "gemini-2.5-flash")
MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "400"))

MAX_RETRIES = 2
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "5"))

DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))

GRAPHITE_HOST = os.getenv("GRAPHITE_HOST", "localhost")
GRAPHITE_HOST_PORT = int(os.getenv("GRAPHITE_HOST_PORT", "8125"))

RESPONSE_CLEANER = os.getenv("RESPONSE_CLEANER", "extract_code")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "3000"))


def get_database_url() -> str:
    """DATABASE_URL wins; otherwise a MySQL URL is assembled from the DB_* variables."""
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    url = URL.create(
        "mysql+pymysql",
        username=os.getenv("DB_USER", "root"),
        password=os.getenv("DB_PASSWORD", ""),
        host=os.getenv("DB_HOST", "localhost"),
        port=int(os.getenv("DB_PORT", "3306")),
        database=os.getenv("DB_NAME", "chatbot_db"),
    )
    return url.render_as_string(hide_password=False)


DATABASE_URL = get_database_url()
