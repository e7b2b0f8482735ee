# src/services/content_service.py
"""
Site copy stored as JSON blobs in ``site_content`` and validated per key.

Known keys have a pydantic model that fills defaults for missing fields;
any other key accepts an arbitrary JSON object.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from src.db.models import SiteContent
from src.services.cache_service import cache_service
from src.services.errors import ServiceError

logger = logging.getLogger(__name__)


class Stat(BaseModel):
    value: str = ""
    title: str = ""
    subtitle: str = ""


class HeroContent(BaseModel):
    h1: str = ""
    h2: str = ""
    intro: str = ""
    stats: List[Stat] = Field(default_factory=lambda: [Stat(), Stat(), Stat()])


class DirectoryLabelsContent(BaseModel):
    interestsLabel: str = ""


class QuizLocations(BaseModel):
    cities: List[str] = Field(default_factory=list)
    subLocations: Dict[str, List[str]] = Field(default_factory=dict)


class QuizOptions(BaseModel):
    problems: List[str] = Field(default_factory=list)
    locations: QuizLocations = Field(default_factory=QuizLocations)
    genders: List[str] = Field(default_factory=list)
    lgbtq: List[str] = Field(default_factory=list)
    religions: List[str] = Field(default_factory=list)
    ages: List[str] = Field(default_factory=list)
    experienceBands: List[str] = Field(default_factory=list)


class QuizQuestions(BaseModel):
    problem: str = ""
    location: str = ""
    gender: str = ""
    lgbtq: str = ""
    religion: str = ""
    age: str = ""
    experience: str = ""
    budget: str = ""


class QuizContent(BaseModel):
    questions: QuizQuestions = Field(default_factory=QuizQuestions)
    options: QuizOptions = Field(default_factory=QuizOptions)


GENERIC_CONTENT = TypeAdapter(Dict[str, Any])

CONTENT_SCHEMAS = {
    "home.hero": HeroContent,
    "directory.labels": DirectoryLabelsContent,
    "match.quiz": QuizContent,
}

DEFAULT_CONTENT_KEYS = [
    ("home.hero", "Homepage Hero"),
    ("directory.intro", "Therapist Directory Intro"),
    ("directory.labels", "Directory Labels (UI Text)"),
    ("blog.settings", "Blog Settings"),
    ("match.quiz", "Match Quiz"),
]


def format_validation_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Group pydantic errors by dotted field path."""
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        errors.setdefault(path, []).append(err.get("msg", "Invalid value"))
    return errors


def validate_content(key: str, data: Any) -> Dict[str, Any]:
    """Validate ``data`` for ``key`` and return it with defaults filled in.

    Raises ServiceError carrying ``{path: [messages]}`` details.
    """
    schema = CONTENT_SCHEMAS.get(key)
    try:
        if schema is None:
            return GENERIC_CONTENT.validate_python(data if data is not None else {})
        return schema.model_validate(data if data is not None else {}).model_dump()
    except ValidationError as e:
        raise ServiceError("Validation failed", details=format_validation_errors(e))


class ContentService:
    def get_all(self, session: Session) -> Dict[str, Dict[str, Any]]:
        """All stored content keyed by key; default keys missing from the
        table come back with empty content."""
        content = {row.key: row.to_dict() for row in session.query(SiteContent).all()}
        for key, title in DEFAULT_CONTENT_KEYS:
            if key not in content:
                content[key] = {"key": key, "title": title, "content": {}, "updated_at": None}
        return content

    def get(self, session: Session, key: str) -> Dict[str, Any]:
        cached = cache_service.get_content(key)
        if cached is not None:
            return cached

        row = session.get(SiteContent, key)
        if row is not None:
            data = row.to_dict()
        else:
            title = dict(DEFAULT_CONTENT_KEYS).get(key)
            data = {"key": key, "title": title, "content": {}, "updated_at": None}

        if key in CONTENT_SCHEMAS:
            data["content"] = validate_content(key, data["content"] or {})

        cache_service.set_content(key, data)
        return data

    def update(
        self,
        session: Session,
        key: str,
        title: Optional[str],
        data: Any,
        actor_user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        validated = validate_content(key, data)

        row = session.get(SiteContent, key)
        if row is None:
            row = SiteContent(key=key)
            session.add(row)
        row.title = title if title is not None else (row.title or dict(DEFAULT_CONTENT_KEYS).get(key))
        row.content = validated
        row.updated_by = actor_user_id
        row.updated_at = datetime.utcnow()
        session.flush()

        cache_service.invalidate_content_cache()
        logger.info(f"✅ Updated site content '{key}'")
        return row.to_dict()


content_service = ContentService()
