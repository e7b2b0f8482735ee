# src/services/invitation_service.py
"""
Therapist invitations and account lifecycle: invite, resend, validate,
accept, password reset and full account deletion.
"""
import logging
import os
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.auth import hash_password
from src.db.models import (
    ContactRequest,
    PasswordResetToken,
    PaymentNotification,
    Profile,
    RankingHistory,
    Session as TherapySession,
    Therapist,
    TherapistInvitation,
    TherapistNotification,
    TherapistPayment,
    TherapistPaymentAction,
)
from src.services.audit import log_admin_action
from src.services.cache_service import cache_service
from src.services.email_service import email_service
from src.services.errors import ConflictError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)

INVITE_TTL = timedelta(days=7)
RESET_TTL = timedelta(hours=1)
MIN_PASSWORD_LENGTH = 12


def _site_url() -> str:
    return os.getenv(
        "SITE_URL", os.getenv("NEXT_PUBLIC_SITE_URL", "http://localhost:3000")
    ).rstrip("/")


def invite_link(token: str) -> str:
    return f"{_site_url()}/invite/accept?token={token}"


class InvitationService:
    # -- invites ------------------------------------------------------------

    def _pending_invite(self, session: Session, email: str) -> Optional[TherapistInvitation]:
        return (
            session.query(TherapistInvitation)
            .filter(TherapistInvitation.email == email, TherapistInvitation.status == "pending")
            .order_by(TherapistInvitation.invited_at.desc())
            .first()
        )

    def invite(
        self, session: Session, email: str, actor_user_id: Optional[str] = None, method: str = "single"
    ) -> Dict[str, Any]:
        """Send (or resend) an invitation. A delivery failure marks the
        invitation undeliverable and is reported as ``success: False``."""
        email = email.strip().lower()
        now = datetime.utcnow()

        invitation = self._pending_invite(session, email)
        resent = invitation is not None

        if invitation is None:
            invitation = TherapistInvitation(
                email=email,
                token=secrets.token_hex(32),
                status="pending",
                invited_by=actor_user_id,
                invited_at=now,
                expires_at=now + INVITE_TTL,
                send_count=0,
            )
            session.add(invitation)

        invitation.last_sent_at = now
        invitation.send_count = (invitation.send_count or 0) + 1

        log_admin_action(
            session,
            actor_user_id,
            "therapist_invitation_resent" if resent else "therapist_invited",
            target_email=email,
            details={
                "method": method,
                "send_count": invitation.send_count,
                "invite_token": invitation.token[:8] + "...",
            },
        )

        result = email_service.send_therapist_invite(email, invite_link(invitation.token))
        if not result["success"]:
            invitation.status = "undeliverable"
            invitation.failure_reason = result.get("error")
            logger.error(f"❌ Invitation to {email} undeliverable: {result.get('error')}")
            return {"success": False, "error": result.get("error") or "Failed to send email", "resent": resent}

        logger.info(f"✉️ Invitation {'resent' if resent else 'sent'} to {email}")
        return {"success": True, "resent": resent, "email_id": result.get("email_id")}

    def bulk_invite(
        self, session: Session, emails: List[str], actor_user_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        results = []
        for raw in emails:
            email = raw.strip().lower()
            try:
                outcome = self.invite(session, email, actor_user_id, method="bulk")
            except Exception as e:
                logger.error(f"❌ Bulk invite failed for {email}: {str(e)}")
                results.append({"email": email, "status": "error", "message": str(e)})
                continue
            if outcome["success"]:
                message = "Resent invitation" if outcome["resent"] else "Invitation sent"
                results.append({"email": email, "status": "ok", "message": message})
            else:
                results.append({"email": email, "status": "error", "message": outcome["error"]})
        return results

    def resend_for_account(
        self, session: Session, email: str, actor_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Re-invite an account that exists but has never been confirmed."""
        email = email.strip().lower()
        profile = session.query(Profile).filter(Profile.email == email).first()
        if profile is None:
            raise NotFoundError(
                "User not found",
                details="No invitation exists for this email. Use the invite-therapist endpoint to send a new invitation.",
            )
        if profile.email_confirmed_at is not None:
            raise ServiceError(
                "User already confirmed",
                details="This user has already confirmed their email. Use password reset if they need to regain access.",
            )
        return self.invite(session, email, actor_user_id, method="resend")

    def validate(self, session: Session, token: str, now: Optional[datetime] = None) -> TherapistInvitation:
        """Return the pending invitation for ``token``.

        404 when no invitation matches, 400 when it is no longer pending or
        has expired (an expired one is marked as such).
        """
        now = now or datetime.utcnow()
        invitation = (
            session.query(TherapistInvitation)
            .filter(TherapistInvitation.token == token)
            .first()
        )
        if invitation is None:
            raise NotFoundError("Invalid or expired invitation")
        if invitation.status != "pending":
            raise ServiceError(f"Invitation is {invitation.status}")
        if invitation.expires_at and invitation.expires_at < now:
            invitation.status = "expired"
            raise ServiceError("Invitation has expired")
        return invitation

    def accept(self, session: Session, token: str, password: str) -> Dict[str, Any]:
        """Create the therapist account for an invitation."""
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        invitation = self.validate(session, token)
        now = datetime.utcnow()

        profile = session.query(Profile).filter(Profile.email == invitation.email).first()
        if profile is not None and profile.email_confirmed_at is not None:
            raise ConflictError(
                "An account with this email already exists. Please try logging in instead."
            )

        if profile is None:
            profile = Profile(email=invitation.email, role="therapist")
            session.add(profile)
        profile.password_hash = hash_password(password)
        profile.email_confirmed_at = now
        session.flush()

        if session.get(Therapist, profile.user_id) is None:
            session.add(
                Therapist(
                    user_id=profile.user_id,
                    full_name=profile.full_name or "",
                    status="pending",
                )
            )

        invitation.status = "accepted"
        invitation.accepted_at = now
        invitation.accepted_user_id = profile.user_id

        logger.info(f"✅ Invitation accepted by {invitation.email}")
        return {
            "success": True,
            "user_id": profile.user_id,
            "message": "Account created successfully!",
            "redirect": "/onboarding/therapist",
        }

    # -- password reset -----------------------------------------------------

    def request_password_reset(self, session: Session, email: str) -> None:
        """Email a reset link if the account exists. Silent otherwise."""
        email = email.strip().lower()
        profile = session.query(Profile).filter(Profile.email == email).first()
        if profile is None:
            logger.info(f"ℹ️ Password reset requested for unknown email {email}")
            return

        token = secrets.token_urlsafe(32)
        session.add(
            PasswordResetToken(
                token=token, user_id=profile.user_id, expires_at=datetime.utcnow() + RESET_TTL
            )
        )
        link = f"{_site_url()}/reset-password/confirm?token={token}"
        result = email_service.send_password_reset(email, link)
        if not result["success"]:
            logger.error(f"❌ Password reset email to {email} failed: {result.get('error')}")

    def confirm_password_reset(self, session: Session, token: str, password: str) -> None:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        record = session.get(PasswordResetToken, token)
        now = datetime.utcnow()
        if record is None or record.used_at is not None or record.expires_at < now:
            raise ServiceError("Invalid or expired reset link")

        profile = session.get(Profile, record.user_id)
        if profile is None:
            raise NotFoundError("User not found")
        profile.password_hash = hash_password(password)
        if profile.email_confirmed_at is None:
            profile.email_confirmed_at = now
        record.used_at = now

    # -- deletion -----------------------------------------------------------

    def delete_therapist(
        self, session: Session, user_id: str, actor_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Remove a therapist account and everything that references it."""
        profile = session.get(Profile, user_id)
        if profile is None:
            raise NotFoundError("User not found")
        if profile.role == "admin":
            raise ServiceError("Cannot delete an admin account")

        payment_ids = [
            row.id
            for row in session.query(TherapistPayment.id).filter(
                TherapistPayment.therapist_id == user_id
            )
        ]
        if payment_ids:
            session.query(PaymentNotification).filter(
                PaymentNotification.payment_id.in_(payment_ids)
            ).delete(synchronize_session=False)
            session.query(TherapistPaymentAction).filter(
                TherapistPaymentAction.payment_id.in_(payment_ids)
            ).delete(synchronize_session=False)

        for model, column in (
            (TherapistNotification, TherapistNotification.therapist_id),
            (RankingHistory, RankingHistory.therapist_id),
            (TherapistPaymentAction, TherapistPaymentAction.therapist_id),
            (TherapistPayment, TherapistPayment.therapist_id),
            (ContactRequest, ContactRequest.therapist_id),
        ):
            session.query(model).filter(column == user_id).delete(synchronize_session=False)

        # Reschedule chains reference other sessions of the same therapist.
        session.query(TherapySession).filter(TherapySession.therapist_id == user_id).update(
            {TherapySession.rescheduled_from: None}, synchronize_session=False
        )
        session.query(TherapySession).filter(TherapySession.therapist_id == user_id).delete(
            synchronize_session=False
        )
        session.query(PasswordResetToken).filter(PasswordResetToken.user_id == user_id).delete(
            synchronize_session=False
        )

        therapist = session.get(Therapist, user_id)
        if therapist is not None:
            session.delete(therapist)
            session.flush()

        email = profile.email
        session.delete(profile)

        log_admin_action(
            session, actor_user_id, "therapist_deleted", target_user_id=user_id, target_email=email
        )
        cache_service.invalidate_directory_cache()
        logger.info(f"🗑️ Deleted therapist account {email}")
        return {"ok": True}


invitation_service = InvitationService()
