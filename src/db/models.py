# src/db/models.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class Profile(Base):
    """A login account. Role is either ``admin`` or ``therapist``."""

    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    full_name = Column(String)
    role = Column(String, nullable=False, default="therapist", index=True)
    password_hash = Column(String)
    email_confirmed_at = Column(DateTime)
    terms_accepted_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    therapist = relationship("Therapist", back_populates="profile", uselist=False)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "email_confirmed_at": _iso(self.email_confirmed_at),
            "created_at": _iso(self.created_at),
        }


class Therapist(Base):
    __tablename__ = "therapists"

    user_id = Column(String(36), ForeignKey("profiles.user_id"), primary_key=True)
    full_name = Column(String, nullable=False, index=True)
    title = Column(String)
    bio_short = Column(Text)
    bio_long = Column(Text)

    # demographics
    gender = Column(String)
    religion = Column(String)
    age_range = Column(String)
    years_of_experience = Column(Integer, default=0)
    languages = Column(JSON, default=list)
    interests = Column(JSON, default=list)
    lgbtq_friendly = Column(Boolean, default=False)
    profile_image_url = Column(String)

    # marketplace state
    status = Column(String, default="pending", index=True)
    ranking_points = Column(Integer, default=0)
    rating = Column(Float)
    session_price_45_min = Column(Float)
    commission_per_session = Column(Float)
    remote_available = Column(Boolean, default=False)
    total_sessions = Column(Integer, default=0)
    churn_rate_monthly = Column(Float)
    average_response_time_hours = Column(Float)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = relationship("Profile", back_populates="therapist")
    location_links = relationship(
        "TherapistLocation", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (Index("idx_therapists_status_ranking", "status", "ranking_points"),)

    @property
    def location_names(self) -> list:
        return [link.location.name for link in self.location_links if link.location]

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "full_name": self.full_name,
            "title": self.title,
            "bio_short": self.bio_short,
            "bio_long": self.bio_long,
            "gender": self.gender,
            "religion": self.religion,
            "age_range": self.age_range,
            "years_of_experience": self.years_of_experience or 0,
            "languages": self.languages or [],
            "interests": self.interests or [],
            "lgbtq_friendly": bool(self.lgbtq_friendly),
            "profile_image_url": self.profile_image_url,
            "status": self.status,
            "ranking_points": self.ranking_points or 0,
            "rating": self.rating,
            "session_price_45_min": self.session_price_45_min,
            "commission_per_session": self.commission_per_session,
            "remote_available": bool(self.remote_available),
            "total_sessions": self.total_sessions or 0,
            "churn_rate_monthly": self.churn_rate_monthly,
            "average_response_time_hours": self.average_response_time_hours,
            "locations": self.location_names,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)


class TherapistLocation(Base):
    __tablename__ = "therapist_locations"

    therapist_id = Column(
        String(36), ForeignKey("therapists.user_id"), primary_key=True
    )
    location_id = Column(Integer, ForeignKey("locations.id"), primary_key=True)

    location = relationship("Location", lazy="joined")


class Session(Base):
    """A therapy session. The ``is_too_close`` flag is derived per request."""

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    therapist_id = Column(
        String(36), ForeignKey("therapists.user_id"), nullable=False, index=True
    )
    patient_id = Column(String(36))
    client_name = Column(String)
    client_email = Column(String, index=True)
    client_phone = Column(String)
    session_date = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, default=60)
    price = Column(Float, default=100)
    status = Column(String, default="scheduled", index=True)
    color_tag = Column(String)
    notes = Column(Text)
    rescheduled_from = Column(String(36), ForeignKey("sessions.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_sessions_therapist_date", "therapist_id", "session_date"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "therapist_id": self.therapist_id,
            "patient_id": self.patient_id,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "session_date": _iso(self.session_date),
            "duration_minutes": self.duration_minutes,
            "price": self.price,
            "status": self.status,
            "color_tag": self.color_tag,
            "notes": self.notes,
            "rescheduled_from": self.rescheduled_from,
            "created_at": _iso(self.created_at),
        }


class ContactRequest(Base):
    __tablename__ = "contact_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    therapist_id = Column(
        String(36), ForeignKey("therapists.user_id"), nullable=False, index=True
    )
    client_name = Column(String, nullable=False)
    client_email = Column(String, nullable=False)
    client_phone = Column(String)
    message = Column(Text)
    match_session_id = Column(String, index=True)
    status = Column(String, default="new", index=True)
    rejection_reason = Column(Text)
    session_id = Column(String(36), ForeignKey("sessions.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "therapist_id": self.therapist_id,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "message": self.message,
            "match_session_id": self.match_session_id,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "session_id": self.session_id,
            "created_at": _iso(self.created_at),
        }


class TherapistPayment(Base):
    """Commission owed for one bimonthly period."""

    __tablename__ = "therapist_payments"

    id = Column(String(36), primary_key=True, default=new_id)
    therapist_id = Column(
        String(36), ForeignKey("therapists.user_id"), nullable=False, index=True
    )
    payment_period_start = Column(Date, nullable=False)
    payment_period_end = Column(Date, nullable=False)
    total_sessions = Column(Integer, default=0)
    commission_amount = Column(Float, default=0)
    payment_due_date = Column(Date, nullable=False)
    payment_completed_date = Column(DateTime)
    last_paid_action_at = Column(DateTime)
    status = Column(String, default="pending", index=True)
    admin_notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint(
            "therapist_id", "payment_period_start", name="uq_payment_therapist_period"
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "therapist_id": self.therapist_id,
            "payment_period_start": _iso(self.payment_period_start),
            "payment_period_end": _iso(self.payment_period_end),
            "total_sessions": self.total_sessions or 0,
            "commission_amount": self.commission_amount or 0,
            "payment_due_date": _iso(self.payment_due_date),
            "payment_completed_date": _iso(self.payment_completed_date),
            "last_paid_action_at": _iso(self.last_paid_action_at),
            "status": self.status,
            "admin_notes": self.admin_notes,
            "created_at": _iso(self.created_at),
        }


class TherapistPaymentAction(Base):
    __tablename__ = "therapist_payment_actions"

    id = Column(String(36), primary_key=True, default=new_id)
    payment_id = Column(
        String(36), ForeignKey("therapist_payments.id"), nullable=False, index=True
    )
    therapist_id = Column(String(36), ForeignKey("therapists.user_id"), index=True)
    action = Column(String, nullable=False)
    amount = Column(Float)
    payment_method = Column(String)
    transaction_id = Column(String)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "therapist_id": self.therapist_id,
            "action": self.action,
            "amount": self.amount,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
        }


class PaymentNotification(Base):
    """One row per notification stage delivered for a payment."""

    __tablename__ = "payment_notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    payment_id = Column(
        String(36), ForeignKey("therapist_payments.id"), nullable=False, index=True
    )
    stage = Column(String, nullable=False)
    email_id = Column(String)
    sent_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("payment_id", "stage", name="uq_payment_notification_stage"),
    )


class TherapistInvitation(Base):
    __tablename__ = "therapist_invitations"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=False, index=True)
    token = Column(String, unique=True, nullable=False, index=True)
    status = Column(String, default="pending", index=True)
    invited_by = Column(String(36))
    invited_at = Column(DateTime, default=datetime.utcnow)
    last_sent_at = Column(DateTime)
    expires_at = Column(DateTime, nullable=False)
    send_count = Column(Integer, default=0)
    accepted_at = Column(DateTime)
    accepted_user_id = Column(String(36))
    failure_reason = Column(Text)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "status": self.status,
            "invited_at": _iso(self.invited_at),
            "last_sent_at": _iso(self.last_sent_at),
            "expires_at": _iso(self.expires_at),
            "send_count": self.send_count or 0,
            "accepted_at": _iso(self.accepted_at),
        }


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    token = Column(String, primary_key=True)
    user_id = Column(String(36), ForeignKey("profiles.user_id"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)


class SiteContent(Base):
    __tablename__ = "site_content"

    key = Column(String, primary_key=True)
    title = Column(String)
    content = Column(JSON, default=dict)
    updated_by = Column(String(36))
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "title": self.title,
            "content": self.content or {},
            "updated_at": _iso(self.updated_at),
        }


class MatchEvent(Base):
    __tablename__ = "match_events"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String, nullable=False, index=True)
    user_id = Column(String(36))
    problem = Column(String)
    city = Column(String)
    area = Column(String)
    gender = Column(String)
    lgbtq = Column(String)
    religion = Column(String)
    age = Column(String)
    exp_band = Column(String)
    price_min = Column(Float)
    price_max = Column(Float)
    source_page = Column(String)
    user_agent = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class RankingHistory(Base):
    __tablename__ = "ranking_history"

    id = Column(String(36), primary_key=True, default=new_id)
    therapist_id = Column(
        String(36), ForeignKey("therapists.user_id"), nullable=False, index=True
    )
    previous_points = Column(Integer)
    new_points = Column(Integer)
    change_type = Column(String)
    change_reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "therapist_id": self.therapist_id,
            "previous_points": self.previous_points,
            "new_points": self.new_points,
            "change_type": self.change_type,
            "change_reason": self.change_reason,
            "created_at": _iso(self.created_at),
        }


class TherapistNotification(Base):
    __tablename__ = "therapist_notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    therapist_id = Column(
        String(36), ForeignKey("therapists.user_id"), nullable=False, index=True
    )
    title = Column(String, nullable=False)
    message = Column(Text)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
        }


class AdminAuditLog(Base):
    __tablename__ = "admin_audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    actor_user_id = Column(String(36))
    action = Column(String, nullable=False, index=True)
    target_user_id = Column(String(36))
    target_email = Column(String)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
