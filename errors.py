# errors.py - error taxonomy


class ChatbotError(Exception):
    """Base class for every error raised by this service."""


class ConfigurationError(ChatbotError):
    """A required setting or credential is missing or invalid."""


class StoreConnectionError(ChatbotError, ConnectionError):
    """The chat history database could not be reached."""


class CorruptHistoryError(ChatbotError):
    """A persisted message could not be read back as a valid message."""


class AppendConflictError(ChatbotError):
    """Concurrent writers kept winning the race for the same session row."""


class RetrievalFailure(ChatbotError):
    pass


class ModelInvocationFailure(ChatbotError):
    pass


class DeliveryFailure(ChatbotError):
    pass
