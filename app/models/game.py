from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from app.core.constants import DEFAULT_TAGS


class GameDetails(BaseModel):
    """One DLsite work as extracted from its product page."""

    model_config = ConfigDict(frozen=True)

    id: str  # RJ code, e.g. "RJ01234567"
    title: str = ""
    circle: str = ""
    description: str = ""
    image_url: str = ""
    price: int | None = None  # None = unknown, 0 = free
    release_date: str = ""  # "YYYY-MM-DD" or ""
    genre: str = ""
    dlsite_url: str = ""
    tags: list[str] = Field(default_factory=lambda: list(DEFAULT_TAGS))


class RankedGame(GameDetails):
    rank: int  # 1-based position in the trend listing


class CacheEntry(BaseModel):
    details: GameDetails
    ts: float  # epoch seconds of the last write


class RankingSnapshot(BaseModel):
    items: list[RankedGame] = Field(default_factory=list)
    fetched_at: float | None = None


class Progress(BaseModel):
    fetched: int = 0
    target: int = 0


class RankingStatus(BaseModel):
    """Pull-style status of the ranking rebuild."""

    in_progress: bool = False
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_error: str | None = None
    cached_count: int = 0
    cached_at: datetime | None = None
    next_refresh_at: datetime | None = None
    progress: Progress = Field(default_factory=Progress)


class GCLogEntry(BaseModel):
    ts: datetime
    deleted_count: int = 0


class GCResult(BaseModel):
    deleted_count: int
    cutoff: str  # ISO 8601


def to_datetime(ts: float | None) -> datetime | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)
