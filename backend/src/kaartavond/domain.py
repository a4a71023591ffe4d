from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

EventStatus = Literal["OPEN", "LOCKED"]

ROUNDS = (1, 2, 3)
MAX_PARTICIPANTS = 60
DEFAULT_PRIZE_RANKS = (1, 18, 25)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def validate_prize_ranks(ranks: list[int]) -> list[int]:
    """Three positive, pairwise distinct rank positions."""

    if len(ranks) != 3:
        raise ValueError("exactly three prize ranks are required")
    if any(rank < 1 for rank in ranks):
        raise ValueError("prize ranks must be positive")
    if len(set(ranks)) != len(ranks):
        raise ValueError("prize ranks must be unique")
    return ranks


def _strip_required(v: object, field: str) -> str:
    if not isinstance(v, str):
        raise ValueError(f"{field} must be a string")
    s = v.strip()
    if not s:
        raise ValueError(f"{field} must not be blank")
    return s


def _strip_optional(v: object) -> object:
    if isinstance(v, str):
        return v.strip() or None
    return v


# Stored entities


class Player(BaseModel):
    id: str
    name: str
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime


class Season(BaseModel):
    id: str
    name: str
    start_date: date | None = None
    end_date: date | None = None
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime


class Event(BaseModel):
    id: str
    season_id: str
    event_date: date
    title: str | None = None
    notes: str | None = None
    prize_ranks: list[int] = Field(default_factory=lambda: list(DEFAULT_PRIZE_RANKS))
    status: EventStatus = "OPEN"
    locked_at: datetime | None = None
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime


class EventParticipant(BaseModel):
    id: str
    event_id: str
    player_id: str
    points_r1: int | None = None
    points_r2: int | None = None
    points_r3: int | None = None
    created_at: datetime
    updated_at: datetime


class AuditEntry(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    action: str
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    created_at: datetime


class StoreSnapshot(BaseModel):
    """Complete dataset; the JSON file backend persists exactly this shape."""

    players: dict[str, Player] = Field(default_factory=dict)
    seasons: dict[str, Season] = Field(default_factory=dict)
    events: dict[str, Event] = Field(default_factory=dict)
    participants: dict[str, EventParticipant] = Field(default_factory=dict)
    audit_log: list[AuditEntry] = Field(default_factory=list)


# Ranking engine types


class ParticipantRow(BaseModel):
    id: str
    player_id: str
    player_name: str
    points_r1: int | None = Field(default=None, ge=0)
    points_r2: int | None = Field(default=None, ge=0)
    points_r3: int | None = Field(default=None, ge=0)

    def points(self, round_no: int) -> int | None:
        return getattr(self, f"points_r{round_no}")

    @property
    def has_all_points(self) -> bool:
        return all(self.points(r) is not None for r in ROUNDS)


class RankedParticipant(ParticipantRow):
    total_points: int | None = None
    rank_r1: int | None = None
    rank_r2: int | None = None
    rank_r3: int | None = None

    def rank(self, round_no: int) -> int | None:
        return getattr(self, f"rank_r{round_no}")


class PrizeWinner(BaseModel):
    rank: int
    player_name: str


class RoundWinners(BaseModel):
    round: int
    winners: list[PrizeWinner]


class EventWinner(BaseModel):
    rank: int = 1
    player_id: str
    player_name: str
    total_points: int


class RankingResult(BaseModel):
    participants: list[RankedParticipant]
    tie_errors: list[str]
    round_ties: dict[int, bool]
    round_winners: list[RoundWinners]
    event_winner: EventWinner | None = None


class LockDecision(BaseModel):
    allowed: bool
    reasons: list[str]


class SeasonRankingRow(BaseModel):
    rank: int
    player_id: str
    player_name: str
    season_total: int
    appearances: int


class SeasonRanking(BaseModel):
    available: bool
    message: str | None = None
    open_event_ids: list[str] | None = None
    ranking: list[SeasonRankingRow] | None = None
    tie_warning: bool | None = None


# Requests


class _PatchRequest(BaseModel):
    @model_validator(mode="after")
    def _require_changes(self):
        if not self.model_fields_set:
            raise ValueError("no changes given")
        return self


class CreatePlayerRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> str:
        return _strip_required(v, "name")


class ImportPlayersRequest(BaseModel):
    names: list[str] = Field(min_length=1)

    @field_validator("names", mode="before")
    @classmethod
    def _normalize_names(cls, v: object) -> list[str]:
        if not isinstance(v, list):
            raise ValueError("names must be a list")
        normalized: list[str] = []
        for item in v:
            if not isinstance(item, str):
                raise ValueError("names items must be strings")
            s = item.strip()
            if s:
                normalized.append(s)
        if not normalized:
            raise ValueError("names must contain at least one non-blank item")
        return normalized


class UpdatePlayerRequest(_PatchRequest):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    is_archived: bool | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> str:
        return _strip_required(v, "name")


class CreateSeasonRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> str:
        return _strip_required(v, "name")


class UpdateSeasonRequest(_PatchRequest):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    start_date: date | None = None
    end_date: date | None = None
    is_archived: bool | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> str:
        return _strip_required(v, "name")


class CreateEventRequest(BaseModel):
    season_id: str = Field(min_length=1)
    event_date: date
    title: str | None = Field(default=None, max_length=200)
    notes: str | None = None
    prize_ranks: list[int] = Field(default_factory=lambda: list(DEFAULT_PRIZE_RANKS))

    @field_validator("title", "notes", mode="before")
    @classmethod
    def _strip_text(cls, v: object) -> object:
        return _strip_optional(v)

    @field_validator("prize_ranks")
    @classmethod
    def _check_prize_ranks(cls, v: list[int]) -> list[int]:
        return validate_prize_ranks(v)


class UpdateEventRequest(_PatchRequest):
    event_date: date | None = None
    title: str | None = Field(default=None, max_length=200)
    notes: str | None = None
    prize_ranks: list[int] | None = None
    is_archived: bool | None = None

    @field_validator("title", "notes", mode="before")
    @classmethod
    def _strip_text(cls, v: object) -> object:
        return _strip_optional(v)

    @field_validator("prize_ranks")
    @classmethod
    def _check_prize_ranks(cls, v: list[int] | None) -> list[int] | None:
        if v is None:
            raise ValueError("prize_ranks must not be null")
        return validate_prize_ranks(v)


class AddParticipantRequest(BaseModel):
    player_id: str = Field(min_length=1)


class UpdateScoresRequest(_PatchRequest):
    points_r1: int | None = Field(default=None, ge=0)
    points_r2: int | None = Field(default=None, ge=0)
    points_r3: int | None = Field(default=None, ge=0)


# Responses


class CreatedResponse(BaseModel):
    id: str


class ImportPlayersResponse(BaseModel):
    added: int
    players: list[Player]


class EventDetailResponse(Event):
    participants: list[RankedParticipant]
    round_winners: list[RoundWinners]
    event_winner: EventWinner | None = None
    tie_errors: list[str]
    round_ties: dict[int, bool]
    can_lock: bool
    lock_reasons: list[str]
