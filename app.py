# app.py - LINE RAG chatbot backend
import logging

import click
from flask import Flask
from openai import OpenAI
from pinecone import Pinecone

from config import Config, configure_logging, limiter
from errors import ConfigurationError
from history import ChatHistoryStore
from line import LineMessagingClient
from llm import OpenAIChatModel
from orchestrator import RagOrchestrator
from retriever import PineconeRetriever
from routes import bp
from store import StoreAdapter
from utils import utcnow

logger = logging.getLogger(__name__)


def _require(cfg, *names):
    missing = [n for n in names if not cfg.get(n)]
    if missing:
        raise ConfigurationError(f"Please set {', '.join(missing)} in environment")


def _openai_client(cfg):
    _require(cfg, "OPENAI_API_KEY")
    client = OpenAI(api_key=cfg["OPENAI_API_KEY"], timeout=cfg["LLM_TIMEOUT_SECONDS"])
    logger.info("✅ OpenAI client initialized")
    return client


def build_retriever(cfg, client=None):
    _require(cfg, "PINECONE_API_KEY", "PINECONE_INDEX_NAME")
    client = client or _openai_client(cfg)
    pc = Pinecone(api_key=cfg["PINECONE_API_KEY"])
    index = pc.Index(cfg["PINECONE_INDEX_NAME"])
    logger.info(f"✅ Pinecone index '{cfg['PINECONE_INDEX_NAME']}' initialized")
    return PineconeRetriever(
        client,
        index,
        embedding_model=cfg["EMBEDDING_MODEL"],
        top_k=cfg["TOP_K"],
        namespace=cfg["PINECONE_NAMESPACE"],
        text_key=cfg["PINECONE_TEXT_KEY"],
        timeout=cfg["RETRIEVER_TIMEOUT_SECONDS"],
    )


def build_model(cfg, client=None):
    client = client or _openai_client(cfg)
    return OpenAIChatModel(client, model=cfg["LLM_MODEL"], temperature=cfg["LLM_TEMPERATURE"])


def build_delivery(cfg):
    _require(cfg, "LINE_CHANNEL_ACCESS_TOKEN")
    return LineMessagingClient(cfg["LINE_CHANNEL_ACCESS_TOKEN"], timeout=cfg["LINE_TIMEOUT_SECONDS"])


def create_app(overrides=None, retriever=None, model=None, delivery=None, clock=utcnow):
    """Build the Flask app and wire its components.

    Collaborators that are not passed in are built from configuration; a
    missing credential for one of them raises ConfigurationError.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    cfg = app.config
    configure_logging(cfg["LOG_LEVEL"])

    if cfg["LLM_CONTEXT_HISTORY_COUNT"] > cfg["MAX_MESSAGES_IN_DB"]:
        raise ConfigurationError("LLM_CONTEXT_HISTORY_COUNT must not exceed MAX_MESSAGES_IN_DB")

    store = StoreAdapter(app, cfg["DATABASE_URL"])
    history = ChatHistoryStore(
        store,
        max_messages=cfg["MAX_MESSAGES_IN_DB"],
        ttl_seconds=cfg["SESSION_TTL_SECONDS"],
        clock=clock,
    )

    if retriever is None or model is None:
        client = _openai_client(cfg)
        retriever = retriever or build_retriever(cfg, client)
        model = model or build_model(cfg, client)
    delivery = delivery or build_delivery(cfg)

    orchestrator = RagOrchestrator(
        retriever,
        history,
        model,
        context_history_count=cfg["LLM_CONTEXT_HISTORY_COUNT"],
        top_k=cfg["TOP_K"],
        max_context_chars=cfg["MAX_CONTEXT_CHARS"],
    )

    app.extensions["chatbot"] = {
        "store": store,
        "history": history,
        "orchestrator": orchestrator,
        "delivery": delivery,
    }

    limiter.init_app(app)
    app.register_blueprint(bp)
    _register_commands(app)
    return app


def _register_commands(app):
    @app.cli.command("init-db")
    def init_db():
        """Connect to the store and create the chat history table."""
        app.extensions["chatbot"]["store"].connect()
        click.echo("Chat history store ready.")

    @app.cli.command("purge-sessions")
    def purge_sessions():
        """Delete chat sessions idle for longer than SESSION_TTL_SECONDS."""
        removed = app.extensions["chatbot"]["history"].purge_expired()
        click.echo(f"Removed {removed} expired session(s).")


# ---------- Run ----------
if __name__ == "__main__":
    # For local testing only; in production use gunicorn: `gunicorn "app:create_app()" --bind 0.0.0.0:$PORT --workers 2`
    application = create_app()
    application.run(host="0.0.0.0", port=application.config["PORT"])
