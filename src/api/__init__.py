from flask import Blueprint, Flask


def register_blueprints(app: Flask) -> None:
    """Register all Flask blueprints with the application."""

    # Import blueprints
    from .admin import admin_bp
    from .auth import auth_bp
    from .content import content_bp
    from .dashboard import dashboard_bp
    from .payments import payments_bp
    from .public import public_bp
    from .therapists import therapists_bp

    # Register all blueprints
    app.register_blueprint(therapists_bp)
    app.register_blueprint(content_bp)
    app.register_blueprint(public_bp)  # contact requests, match events
    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)  # therapist only
    app.register_blueprint(admin_bp)  # admin only
    app.register_blueprint(payments_bp)  # admin only

    # Basic API blueprint
    api_bp = Blueprint("api", __name__)

    @api_bp.route("/")
    def index():
        """Basic sanity endpoint to verify that the API is reachable."""
        return {"message": "LinkTherapy API v1.0", "status": "running"}

    app.register_blueprint(api_bp)

    print("✅ Registered all API blueprints:")
    print("   - /api/therapists (GET)")
    print("   - /api/content/<key> (GET)")
    print("   - /api/contact-requests (POST)")
    print("   - /api/match-events (POST)")
    print("   - /api/auth/login (POST)")
    print("   - /api/invite/validate, /api/invite/accept (POST)")
    print("   - /api/reset-password, /api/reset-password/confirm (POST)")
    print("   - /api/onboarding/therapist/complete (POST) [therapist]")
    print("   - /api/dashboard/* [therapist]")
    print("   - /api/admin/therapists/* [admin]")
    print("   - /api/admin/invite-therapist, /bulk, /api/admin/resend-invitation [admin]")
    print("   - /api/admin/delete-therapist [admin]")
    print("   - /api/admin/sessions (GET, POST, PUT, DELETE) [admin]")
    print("   - /api/admin/contact-requests (GET) [admin]")
    print("   - /api/admin/payments/* [admin]")
    print("   - /api/admin/backfill-commissions (POST) [admin]")
    print("   - /api/admin/content (GET, PUT) [admin]")
    print("   - /api/admin/analytics/match (GET) [admin]")
