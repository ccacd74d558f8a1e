# routes.py
import logging

from flask import Blueprint, current_app, jsonify, request
from flask_limiter.util import get_remote_address

from config import limiter
from errors import DeliveryFailure
from line import verify_signature
from utils import require_basic_auth

logger = logging.getLogger(__name__)

bp = Blueprint("chatbot", __name__)


def _services():
    return current_app.extensions["chatbot"]


def line_user_key():
    """Rate-limit per LINE user; fall back to the caller's address."""
    data = request.get_json(silent=True) or {}
    events = data.get("events") or []
    if events and isinstance(events[0], dict):
        user_id = (events[0].get("source") or {}).get("userId")
        if user_id:
            return f"line:{user_id}"
    return get_remote_address()


def _text_messages(events):
    """(session_id, text, reply_token) for every text message event."""
    for event in events:
        if not isinstance(event, dict) or event.get("type") != "message":
            continue
        message = event.get("message") or {}
        if message.get("type") != "text":
            continue
        user_id = (event.get("source") or {}).get("userId")
        text = (message.get("text") or "").strip()
        if not user_id or not text:
            logger.warning("Skipping message event without user id or text")
            continue
        yield user_id, text, event.get("replyToken")


@bp.route("/", methods=["GET"])
def home():
    return jsonify({"status": "ok", "message": "LINE RAG chatbot running"})


@bp.route("/healthz", methods=["GET"])
def healthz():
    return jsonify({"status": "ok"})


@bp.route("/webhook/line-bot", methods=["POST"])
@limiter.limit(lambda: current_app.config["RATE_LIMIT"], key_func=line_user_key)
def line_webhook():
    secret = current_app.config.get("LINE_CHANNEL_SECRET")
    if secret and not verify_signature(secret, request.get_data(), request.headers.get("X-Line-Signature")):
        logger.warning("❌ Rejected webhook call with invalid signature")
        return jsonify({"error": "invalid_signature"}), 400

    data = request.get_json(silent=True) or {}
    services = _services()
    for session_id, text, reply_token in _text_messages(data.get("events") or []):
        answer = services["orchestrator"].handle_chat(session_id, text)
        try:
            services["delivery"].reply(reply_token, answer)
        except DeliveryFailure:
            # the turn is already in history; LINE still gets its 200
            logger.exception(f"❌ Failed to deliver reply to {session_id}")

    return "", 200


# Admin endpoints
@bp.route("/admin/sessions", methods=["GET"])
@require_basic_auth
def admin_sessions():
    try:
        return jsonify(_services()["history"].list_sessions(limit=200))
    except Exception:
        logger.exception("❌ admin_sessions error:")
        return jsonify({"error": "server_error"}), 500


@bp.route("/admin/session/<session_id>", methods=["GET"])
@require_basic_auth
def admin_view_session(session_id):
    try:
        msgs = _services()["history"].get_messages(session_id)
        return jsonify({
            "session_id": session_id,
            "messages": [m.to_document() for m in msgs],
        })
    except Exception:
        logger.exception("❌ admin_view_session error:")
        return jsonify({"error": "server_error"}), 500


@bp.route("/admin/session/<session_id>/history", methods=["DELETE"])
@require_basic_auth
def admin_clear_session(session_id):
    try:
        if not _services()["history"].clear(session_id):
            return jsonify({"error": "not_found"}), 404
        return jsonify({"message": "history cleared", "session_id": session_id})
    except Exception:
        logger.exception("❌ admin_clear_session error:")
        return jsonify({"error": "server_error"}), 500
