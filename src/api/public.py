# src/api/public.py
"""
Anonymous write endpoints used by the marketing site: contact requests to a
therapist and match quiz events.
"""
import logging

from flask import Blueprint, jsonify, request

from src.api.schemas import ContactRequestIn, MatchEventIn, parse_body
from src.db import get_db_session
from src.services.errors import ServiceError
from src.services.match_service import match_service
from src.services.session_service import session_service
from src.utils.rate_limit import rate_limited

logger = logging.getLogger(__name__)

public_bp = Blueprint("public", __name__)


@public_bp.route("/api/contact-requests", methods=["POST"])
@rate_limited("contact_request")
def create_contact_request():
    payload, error = parse_body(ContactRequestIn)
    if error:
        return error

    session = get_db_session()
    try:
        result = session_service.create_contact_request(session, payload.model_dump())
        return jsonify(result), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error creating contact request: {str(e)}")
        return jsonify({"error": "Failed to submit request"}), 500


@public_bp.route("/api/match-events", methods=["POST"])
@rate_limited("public_api")
def create_match_event():
    payload, error = parse_body(MatchEventIn)
    if error:
        return error

    data = payload.model_dump()
    if not data.get("user_agent"):
        data["user_agent"] = request.headers.get("User-Agent")

    session = get_db_session()
    try:
        return jsonify(match_service.record_event(session, data)), 201
    except Exception as e:
        session.rollback()
        logger.error(f"❌ Error recording match event: {str(e)}")
        return jsonify({"error": "Failed to record match event"}), 500
