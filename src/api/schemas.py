# src/api/schemas.py
"""Request payload models for the JSON endpoints."""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Tuple, Type, TypeVar

from flask import jsonify, request
from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
)

from src.services.content_service import format_validation_errors

T = TypeVar("T", bound=BaseModel)

NonEmptyStr = Annotated[str, Field(min_length=1)]


class ContactRequestIn(BaseModel):
    therapist_id: str = Field(pattern=r"^[0-9a-fA-F-]{36}$")
    client_name: NonEmptyStr
    client_email: EmailStr
    client_phone: Optional[str] = None
    message: Optional[str] = None
    match_session_id: Optional[str] = None


class MatchEventIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    session_id: NonEmptyStr
    user_id: Optional[str] = None
    problem: Optional[str] = None
    city: Optional[str] = None
    area: Optional[str] = None
    gender: Optional[str] = None
    lgbtq: Optional[str] = None
    religion: Optional[str] = None
    age: Optional[str] = None
    exp_band: Optional[str] = None
    price_min: Optional[float] = Field(default=None, ge=0)
    price_max: Optional[float] = Field(default=None, ge=0)
    source_page: Optional[str] = None
    user_agent: Optional[str] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: NonEmptyStr


class InviteIn(BaseModel):
    email: EmailStr


class BulkInviteIn(BaseModel):
    emails: List[EmailStr] = Field(min_length=1, max_length=30)


class TokenIn(BaseModel):
    token: NonEmptyStr


class AcceptInviteIn(BaseModel):
    token: NonEmptyStr
    password: str = Field(min_length=12)


class PasswordResetIn(BaseModel):
    email: EmailStr


class PasswordResetConfirmIn(BaseModel):
    token: NonEmptyStr
    password: str = Field(min_length=12)


class OnboardingIn(BaseModel):
    full_name: NonEmptyStr
    title: NonEmptyStr
    bio_short: NonEmptyStr
    bio_long: NonEmptyStr
    religion: Literal["Christian", "Druze", "Sunni", "Shiite", "Other"]
    age_range: Literal["21-28", "29-36", "37-45", "46-55", "55+"]
    years_of_experience: int = Field(ge=0)
    languages: List[str] = Field(min_length=1)
    interests: List[str] = Field(min_length=1)
    session_price_45_min: float = Field(ge=0)
    profile_image_url: Optional[HttpUrl] = None
    gender: Literal["male", "female", "other"]
    lgbtq_friendly: Optional[bool] = None
    locations: List[str] = Field(min_length=1, max_length=2)
    accept_tos: bool

    @field_validator("languages", "interests", "locations")
    @classmethod
    def no_blank_items(cls, values: List[str]) -> List[str]:
        cleaned = [v.strip() for v in values]
        if any(not v for v in cleaned):
            raise ValueError("entries must not be empty")
        return cleaned

    @field_validator("accept_tos")
    @classmethod
    def must_accept_tos(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("You must accept the Terms of Service and Privacy Policy")
        return value


class ProfileUpdateIn(BaseModel):
    title: Optional[str] = None
    bio_short: Optional[str] = None
    bio_long: Optional[str] = None
    languages: Optional[List[str]] = None
    interests: Optional[List[str]] = None
    session_price_45_min: Optional[float] = Field(default=None, ge=0)
    profile_image_url: Optional[HttpUrl] = None
    lgbtq_friendly: Optional[bool] = None
    remote_available: Optional[bool] = None


class ImageUploadIn(BaseModel):
    content_type: Literal["image/jpeg", "image/png", "image/webp"]


class RecalcIn(BaseModel):
    therapist_id: NonEmptyStr
    session_date: NonEmptyStr


class PaymentActionIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: NonEmptyStr
    payment_id: Optional[str] = None
    therapist_id: Optional[str] = None
    amount: Optional[float] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class PaymentDeleteIn(BaseModel):
    payment_id: NonEmptyStr


class CommissionIn(BaseModel):
    therapist_id: NonEmptyStr
    commission_per_session: Optional[float] = Field(default=None, ge=0)


class ToggleOnlineIn(BaseModel):
    therapist_id: NonEmptyStr
    remote_available: bool


class RankingIn(BaseModel):
    therapist_id: NonEmptyStr
    ranking_points: int = Field(ge=0)
    reason: Optional[str] = None


class DeleteTherapistIn(BaseModel):
    user_id: NonEmptyStr


class SessionIn(BaseModel):
    therapist_id: Optional[str] = None
    patient_id: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = None
    session_date: datetime
    duration_minutes: int = Field(default=60, gt=0)
    price: float = Field(default=100, ge=0)
    status: Literal["scheduled", "completed", "cancelled", "rescheduled"] = "scheduled"
    color_tag: Optional[str] = None
    notes: Optional[str] = None


class SessionUpdateIn(BaseModel):
    session_date: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    status: Optional[Literal["scheduled", "completed", "cancelled", "rescheduled"]] = None
    color_tag: Optional[str] = None
    notes: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = None


class ScheduleIn(BaseModel):
    session_date: datetime
    duration_minutes: int = Field(default=60, gt=0)
    price: float = Field(default=100, ge=0)


class RescheduleIn(BaseModel):
    session_date: datetime


class RejectIn(BaseModel):
    rejection_reason: Optional[str] = None


class ContentUpdateIn(BaseModel):
    title: Optional[str] = None
    content: Any = None


def parse_body(model: Type[T]) -> Tuple[Optional[T], Optional[tuple]]:
    """Validate the JSON body against ``model``.

    Returns ``(payload, None)`` or ``(None, error_response)``.
    """
    body = request.get_json(silent=True)
    if body is None:
        return None, (jsonify({"error": "Invalid body"}), 400)
    try:
        return model.model_validate(body), None
    except ValidationError as e:
        details = format_validation_errors(e)
        first_path, first_msgs = next(iter(details.items()))
        message = f"{first_path}: {first_msgs[0]}" if first_path else first_msgs[0]
        return None, (jsonify({"error": f"Invalid input: {message}", "details": details}), 400)
