"""Text synthesis for the ranking query and the candidate items.

Both builders are pure: equal inputs always give byte-identical strings, so
the embedding backend (and its cache) sees identical inputs for logically
identical requests.
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional

from models.recommender import CandidateItem, RecommendRequest

ANONYMOUS_USER = "guest"
UNKNOWN_COORD = "unknown"
DEFAULT_FESTIVAL = "none"
DEFAULT_WEATHER = "normal"

CONTEXT_SEPARATOR = "; "
ITEM_SEPARATOR = " | "


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coord(value: Optional[float]) -> str:
    return UNKNOWN_COORD if value is None else repr(float(value))


def build_context_string(
    request: RecommendRequest,
    *,
    clock: Callable[[], str] = utc_now_iso,
) -> str:
    ctx = request.context
    parts = [
        f"user={request.user_id or ANONYMOUS_USER}",
        f"lat={_coord(request.lat)}",
        f"lon={_coord(request.lon)}",
        f"time={request.now_iso or clock()}",
        f"festival={ctx.festival or DEFAULT_FESTIVAL}",
        f"weather={ctx.weather or DEFAULT_WEATHER}",
    ]
    for key, value in sorted(ctx.extra_signals().items()):
        parts.append(f"{key}={value}")
    return CONTEXT_SEPARATOR.join(parts)


def build_item_text(item: CandidateItem) -> str:
    tags = " ".join(item.tags or [])
    pieces = [item.name, item.category, item.material, item.description, tags]
    return ITEM_SEPARATOR.join(p for p in pieces if p)


def build_item_texts(items: List[CandidateItem]) -> List[str]:
    return [build_item_text(item) for item in items]
