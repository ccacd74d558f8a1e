# utils.py
import datetime
from functools import wraps
from flask import current_app, request, Response


def require_basic_auth(func):
    @wraps(func)
    def wrapped(*args, **kwargs):
        auth = request.authorization
        cfg = current_app.config
        if not auth or auth.username != cfg["ADMIN_USER"] or auth.password != cfg["ADMIN_PASS"]:
            return Response("Login required", 401, {"WWW-Authenticate": 'Basic realm="Login Required"'})
        return func(*args, **kwargs)
    return wrapped


def utcnow():
    """Naive UTC now; the store keeps naive UTC datetimes."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def trim_context_text(text, max_chars=3500):
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars]
