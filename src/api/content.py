# src/api/content.py
"""Site copy: public read, admin read/write."""
import logging

from flask import Blueprint, g, jsonify

from src.api.schemas import ContentUpdateIn, parse_body
from src.auth import require_admin
from src.db import get_db_session
from src.services.content_service import content_service
from src.services.errors import ServiceError

logger = logging.getLogger(__name__)

content_bp = Blueprint("content", __name__)


@content_bp.route("/api/content/<key>", methods=["GET"])
def get_content(key):
    session = get_db_session()
    try:
        return jsonify(content_service.get(session, key))
    except ServiceError as e:
        # Stored content no longer matches its schema.
        logger.error(f"❌ Invalid stored content for '{key}': {e.details}")
        return jsonify(e.to_dict()), 500
    except Exception as e:
        logger.error(f"❌ Error loading content '{key}': {str(e)}")
        return jsonify({"error": "Failed to load content"}), 500


@content_bp.route("/api/admin/content", methods=["GET"])
@require_admin
def list_content():
    session = get_db_session()
    try:
        return jsonify({"content": content_service.get_all(session)})
    except Exception as e:
        logger.error(f"❌ Error listing content: {str(e)}")
        return jsonify({"error": "Failed to load content"}), 500


@content_bp.route("/api/admin/content/<key>", methods=["PUT"])
@require_admin
def update_content(key):
    payload, error = parse_body(ContentUpdateIn)
    if error:
        return error

    session = get_db_session()
    try:
        row = content_service.update(
            session, key, payload.title, payload.content, g.current_user.user_id
        )
        return jsonify({"ok": True, "content": row})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error updating content '{key}': {str(e)}")
        return jsonify({"error": "Failed to update content"}), 500
