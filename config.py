# config.py - configuration and shared extensions

import os
import logging
from flask_sqlalchemy import SQLAlchemy
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# ==== EXTENSIONS ====
# bound to an app by create_app(); nothing here opens a connection
db = SQLAlchemy()
limiter = Limiter(key_func=get_remote_address)

# ==== CONSTANTS ====
CHAT_HISTORIES = "chat_histories"
APPEND_MAX_ATTEMPTS = 5


def _int(name, default):
    return int(os.getenv(name, default))


def _float(name, default):
    return float(os.getenv(name, default))


class Config:
    """Settings read from the environment (and .env) at import time."""

    # ==== STORE ====
    DATABASE_URL = os.getenv("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # ==== KEYS ====
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    PINECONE_API_KEY = os.getenv("PINECONE_API_KEY")
    PINECONE_INDEX_NAME = os.getenv("PINECONE_INDEX_NAME")
    PINECONE_NAMESPACE = os.getenv("PINECONE_NAMESPACE", "")
    PINECONE_TEXT_KEY = os.getenv("PINECONE_TEXT_KEY", "text")
    LINE_CHANNEL_ACCESS_TOKEN = os.getenv("LINE_CHANNEL_ACCESS_TOKEN")
    LINE_CHANNEL_SECRET = os.getenv("LINE_CHANNEL_SECRET")
    ADMIN_USER = os.getenv("ADMIN_USER", "admin")
    ADMIN_PASS = os.getenv("ADMIN_PASS", "changeme")

    # ==== MODELS ====
    EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o")
    LLM_TEMPERATURE = _float("LLM_TEMPERATURE", 0.4)

    # ==== RAG / MEMORY ====
    TOP_K = _int("TOP_K", 5)
    MAX_MESSAGES_IN_DB = _int("MAX_MESSAGES_IN_DB", 20)
    LLM_CONTEXT_HISTORY_COUNT = _int("LLM_CONTEXT_HISTORY_COUNT", 3)
    SESSION_TTL_SECONDS = _int("SESSION_TTL_SECONDS", 300)
    MAX_CONTEXT_CHARS = _int("MAX_CONTEXT_CHARS", 8000)

    # ==== TIMEOUTS (seconds) ====
    LLM_TIMEOUT_SECONDS = _float("LLM_TIMEOUT_SECONDS", 30)
    RETRIEVER_TIMEOUT_SECONDS = _float("RETRIEVER_TIMEOUT_SECONDS", 10)
    LINE_TIMEOUT_SECONDS = _float("LINE_TIMEOUT_SECONDS", 10)

    # ==== HTTP ====
    PORT = _int("PORT", 3000)
    RATE_LIMIT = os.getenv("RATE_LIMIT", "30 per minute")
    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(level="INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
