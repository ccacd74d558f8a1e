# store.py - lazily connected handle to the chat history database
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import db, CHAT_HISTORIES
from errors import ConfigurationError, StoreConnectionError
from models import ChatHistory

logger = logging.getLogger(__name__)

COLLECTIONS = {
    CHAT_HISTORIES: ChatHistory,
}


class StoreAdapter:
    """Owns the database binding of one Flask app.

    The engine is registered with the app up front, but nothing talks to the
    database until the first connect(); after that the same handle is reused
    for the lifetime of the process.
    """

    def __init__(self, app, database_url):
        self.app = app
        self.database_url = database_url
        self._handle = None
        if database_url:
            app.config["SQLALCHEMY_DATABASE_URI"] = database_url
            db.init_app(app)

    @property
    def connected(self):
        return self._handle is not None

    def connect(self):
        if self._handle is not None:
            return self._handle

        if not self.database_url:
            raise ConfigurationError("DATABASE_URL is not set; cannot open the chat history store")

        try:
            with self.app.app_context():
                with db.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                # creates the last_activity_timestamp index used for expiry too
                db.create_all()
        except SQLAlchemyError as exc:
            logger.exception("❌ Error connecting to the chat history store")
            raise StoreConnectionError("Could not connect to the database") from exc

        self._handle = db
        logger.info("✅ Connected to chat history store")
        return self._handle

    def get_collection(self, name):
        self.connect()
        return COLLECTIONS[name]
