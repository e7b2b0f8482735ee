# src/api/therapists.py
"""Public therapist directory."""
import logging

from flask import Blueprint, jsonify, request

from src.db import get_db_session
from src.services.directory import search

logger = logging.getLogger(__name__)

therapists_bp = Blueprint("therapists", __name__)


@therapists_bp.route("/api/therapists", methods=["GET"])
def list_therapists():
    """Active therapists, filtered and sorted by the query string.

    Accepts ``problem``, ``city``, ``area``, ``gender``, ``lgbtq``,
    ``religion``, ``age``, ``exp``, ``price_min``, ``price_max``, ``q``
    and ``sort``.
    """
    session = get_db_session()
    try:
        therapists, filters = search(session, request.args)
        return jsonify(
            {
                "therapists": therapists,
                "count": len(therapists),
                "sort": filters.sort,
            }
        )
    except Exception as e:
        logger.error(f"❌ Error listing therapists: {str(e)}")
        return jsonify({"error": "Failed to load therapists"}), 500
