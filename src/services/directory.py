# src/services/directory.py
"""
Public therapist directory: listing, filter predicates and sort orders.

Filters mirror the query string the match quiz redirects to
(``problem``, ``city``, ``area``, ``gender``, ``lgbtq``, ``religion``,
``age``, ``exp``, ``price_min``/``price_max``, ``q``).
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from src.db.models import Therapist
from src.services.cache_service import cache_service

logger = logging.getLogger(__name__)

EXPERIENCE_BANDS = ("0-5", "6-10", "11-15", "16+")

# Quiz bands normalized onto the directory bands.
EXPERIENCE_BAND_ALIASES = {
    "1-3": "0-5",
    "4-7": "6-10",
    "7-10": "6-10",
    "10+": "16+",
}

SORT_ORDERS = ("ranking", "price-high", "price-low", "experience", "rating")

PUBLIC_FIELDS = (
    "user_id",
    "full_name",
    "title",
    "bio_short",
    "bio_long",
    "gender",
    "religion",
    "age_range",
    "years_of_experience",
    "languages",
    "interests",
    "lgbtq_friendly",
    "profile_image_url",
    "ranking_points",
    "rating",
    "session_price_45_min",
    "remote_available",
    "locations",
)


def normalize_experience_band(band: Optional[str]) -> Optional[str]:
    if not band:
        return None
    band = band.strip()
    band = EXPERIENCE_BAND_ALIASES.get(band, band)
    return band if band in EXPERIENCE_BANDS else None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    if not value or value.lower() == "all":
        return None
    return value


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


@dataclass
class DirectoryFilters:
    problem: Optional[str] = None
    city: Optional[str] = None
    area: Optional[str] = None
    gender: Optional[str] = None
    lgbtq: Optional[str] = None
    religion: Optional[str] = None
    age: Optional[str] = None
    exp: Optional[str] = None
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    q: Optional[str] = None
    sort: str = "ranking"

    @classmethod
    def from_mapping(cls, args: Mapping[str, Any]) -> "DirectoryFilters":
        price_min = _to_int(args.get("price_min"))
        price_max = _to_int(args.get("price_max"))
        # Price bounds only apply when both are given.
        if price_min is None or price_max is None:
            price_min = price_max = None
        else:
            price_min = max(0, price_min)
            price_max = max(price_min, price_max)

        sort = (args.get("sort") or "ranking").strip()
        if sort not in SORT_ORDERS:
            sort = "ranking"

        return cls(
            problem=_clean(args.get("problem")),
            city=_clean(args.get("city")),
            area=_clean(args.get("area")),
            gender=_clean(args.get("gender")),
            lgbtq=_clean(args.get("lgbtq")),
            religion=_clean(args.get("religion")),
            age=_clean(args.get("age")),
            exp=normalize_experience_band(_clean(args.get("exp"))),
            price_min=price_min,
            price_max=price_max,
            q=_clean(args.get("q")),
            sort=sort,
        )

    def to_query_string(self) -> str:
        params = {k: v for k, v in asdict(self).items() if v is not None and k != "sort"}
        return urlencode(params)


def _eq(a: Optional[str], b: str) -> bool:
    return (a or "").strip().lower() == b.strip().lower()


def _any_eq(values, target: str) -> bool:
    return any(_eq(v, target) for v in (values or []) if isinstance(v, str))


def experience_matches(years: Optional[int], band: str) -> bool:
    exp = years or 0
    if band == "0-5":
        return exp <= 5
    if band == "6-10":
        return 6 <= exp <= 10
    if band == "11-15":
        return 11 <= exp <= 15
    if band == "16+":
        return exp >= 16
    return True


def matches(therapist: Dict[str, Any], filters: DirectoryFilters) -> bool:
    """True when ``therapist`` (a serialized dict) passes every active filter."""
    if filters.price_min is not None and filters.price_max is not None:
        price = therapist.get("session_price_45_min") or 0
        if price < filters.price_min or price > filters.price_max:
            return False

    if filters.problem and not _any_eq(therapist.get("interests"), filters.problem):
        return False
    if filters.gender and not _eq(therapist.get("gender"), filters.gender):
        return False
    if filters.lgbtq and filters.lgbtq.lower() == "yes" and not therapist.get("lgbtq_friendly"):
        return False
    if filters.religion and not _eq(therapist.get("religion"), filters.religion):
        return False
    if filters.age and not _eq(therapist.get("age_range"), filters.age):
        return False
    if filters.city and not _any_eq(therapist.get("locations"), filters.city):
        return False
    if filters.area and not _any_eq(therapist.get("locations"), filters.area):
        return False
    if filters.exp and not experience_matches(therapist.get("years_of_experience"), filters.exp):
        return False

    if filters.q:
        needle = filters.q.lower()
        haystack = [
            therapist.get("full_name") or "",
            therapist.get("title") or "",
            therapist.get("bio_short") or "",
            *(therapist.get("interests") or []),
            *(therapist.get("locations") or []),
        ]
        if not any(needle in str(value).lower() for value in haystack):
            return False

    return True


def _sort_key(sort: str):
    keys = {
        "price-high": lambda t: -(t.get("session_price_45_min") or 0),
        "price-low": lambda t: t.get("session_price_45_min") or 0,
        "experience": lambda t: -(t.get("years_of_experience") or 0),
        "rating": lambda t: -(t.get("rating") or 0),
    }
    return keys.get(sort, lambda t: -(t.get("ranking_points") or 0))


def filter_and_sort(
    therapists: List[Dict[str, Any]], filters: DirectoryFilters
) -> List[Dict[str, Any]]:
    result = [t for t in therapists if matches(t, filters)]
    result.sort(key=_sort_key(filters.sort))
    return result


def public_view(therapist: Therapist) -> Dict[str, Any]:
    data = therapist.to_dict()
    return {field: data.get(field) for field in PUBLIC_FIELDS}


def load_active_therapists(session: Session) -> List[Dict[str, Any]]:
    """Active therapists in their public shape, served from cache when warm."""
    cached = cache_service.get_active_therapists()
    if cached is not None:
        return cached

    rows = session.query(Therapist).filter(Therapist.status == "active").all()
    therapists = [public_view(t) for t in rows]
    cache_service.set_active_therapists(therapists)
    logger.debug(f"📋 Loaded {len(therapists)} active therapists into cache")
    return therapists


def search(session: Session, args: Mapping[str, Any]) -> Tuple[List[Dict[str, Any]], DirectoryFilters]:
    filters = DirectoryFilters.from_mapping(args)
    return filter_and_sort(load_active_therapists(session), filters), filters
