from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, Sequence, TypeVar

import boto3
from boto3.dynamodb.conditions import Key
from pydantic import BaseModel

from .config import Settings
from .domain import (
    DEFAULT_PRIZE_RANKS,
    MAX_PARTICIPANTS,
    AuditEntry,
    Event,
    EventParticipant,
    EventStatus,
    LockDecision,
    ParticipantRow,
    Player,
    Season,
    StoreSnapshot,
    new_id,
)
from .errors import (
    ConflictError,
    EventLockedError,
    InvalidTransitionError,
    LockRefusedError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

# Judges an event and its current rows right before the lock is written.
LockGate = Callable[[Event, list[ParticipantRow]], LockDecision]

SEASON_CLEARABLE = frozenset({"start_date", "end_date"})
EVENT_CLEARABLE = frozenset({"title", "notes"})
SCORE_CLEARABLE = frozenset({"points_r1", "points_r2", "points_r3"})


class WriteQueue:
    """Runs write operations one at a time in arrival order.

    Each caller draws a ticket; an operation starts only once every operation
    holding an earlier ticket has returned or raised.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0

    def run(self, operation: Callable[[], T]) -> T:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
        try:
            return operation()
        finally:
            with self._cond:
                self._serving += 1
                self._cond.notify_all()


class Store(Protocol):
    def create_player(self, name: str) -> Player: ...

    def import_players(self, names: Sequence[str]) -> list[Player]: ...

    def get_player(self, player_id: str) -> Player | None: ...

    def list_players(self, query: str = "", include_archived: bool = False) -> list[Player]: ...

    def update_player(self, player_id: str, changes: dict[str, Any]) -> Player: ...

    def create_season(
        self, name: str, start_date: date | None = None, end_date: date | None = None
    ) -> Season: ...

    def get_season(self, season_id: str) -> Season | None: ...

    def list_seasons(self, include_archived: bool = False) -> list[Season]: ...

    def update_season(self, season_id: str, changes: dict[str, Any]) -> Season: ...

    def create_event(
        self,
        season_id: str,
        event_date: date,
        title: str | None = None,
        notes: str | None = None,
        prize_ranks: Sequence[int] = DEFAULT_PRIZE_RANKS,
    ) -> Event: ...

    def get_event(self, event_id: str) -> Event | None: ...

    def list_events(
        self, season_id: str | None = None, include_archived: bool = False
    ) -> list[Event]: ...

    def update_event(self, event_id: str, changes: dict[str, Any]) -> Event: ...

    def set_event_status(
        self, event_id: str, status: EventStatus, gate: LockGate | None = None
    ) -> Event: ...

    def add_participant(self, event_id: str, player_id: str) -> EventParticipant: ...

    def update_scores(
        self, event_id: str, participant_id: str, changes: dict[str, int | None]
    ) -> EventParticipant: ...

    def list_participant_rows(self, event_id: str) -> list[ParticipantRow]: ...

    def list_audit_log(self, entity_id: str | None = None) -> list[AuditEntry]: ...

    def export_snapshot(self) -> StoreSnapshot: ...

    def import_snapshot(self, snapshot: StoreSnapshot) -> None: ...

    def reset(self) -> None: ...

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_name(value: str) -> str:
    return value.strip().lower()


def _ensure_unique_name(
    players: Iterable[Player], name: str, exclude_id: str | None = None
) -> None:
    key = _normalize_name(name)
    if any(p.id != exclude_id and _normalize_name(p.name) == key for p in players):
        raise ConflictError("player name already exists")


def _apply_changes(model: BaseModel, changes: dict[str, Any], clearable: frozenset[str]) -> bool:
    """Copy `changes` onto `model`; None only clears fields listed in `clearable`."""

    changed = False
    for key, value in changes.items():
        if value is None and key not in clearable:
            continue
        setattr(model, key, value)
        changed = True
    if changed:
        model.updated_at = _now()
    return changed


def _check_gate(
    event: Event,
    status: EventStatus,
    rows: Callable[[], list[ParticipantRow]],
    gate: LockGate | None,
) -> None:
    if event.status == status:
        raise InvalidTransitionError(event.id, status)
    if gate is None or status != "LOCKED":
        return
    decision = gate(event, rows())
    if not decision.allowed:
        raise LockRefusedError(event.id, decision.reasons)


def _transition(event: Event, status: EventStatus) -> AuditEntry:
    if event.status == status:
        raise InvalidTransitionError(event.id, status)
    now = _now()
    previous = event.status
    event.status = status
    event.locked_at = now if status == "LOCKED" else None
    event.updated_at = now
    action = "LOCKED" if status == "LOCKED" else "UNLOCKED"
    logger.info("event %s %s", event.id, action.lower())
    return AuditEntry(
        id=new_id("aud"),
        entity_type="event",
        entity_id=event.id,
        action=action,
        old_value={"status": previous},
        new_value={"status": status},
        created_at=now,
    )


def _check_can_join(
    event: Event, player: Player | None, player_id: str, current: Sequence[EventParticipant]
) -> None:
    if event.status == "LOCKED":
        raise EventLockedError(event.id)
    if len(current) >= MAX_PARTICIPANTS:
        raise ConflictError(f"at most {MAX_PARTICIPANTS} participants are allowed")
    if player is None:
        raise NotFoundError("player", player_id)
    if player.is_archived:
        raise ConflictError("archived player cannot be added")
    if any(p.player_id == player_id for p in current):
        raise ConflictError("player already takes part in this event")


def _new_event(
    season_id: str,
    event_date: date,
    title: str | None,
    notes: str | None,
    prize_ranks: Sequence[int],
) -> Event:
    now = _now()
    return Event(
        id=new_id("evt"),
        season_id=season_id,
        event_date=event_date,
        title=title,
        notes=notes,
        prize_ranks=list(prize_ranks),
        created_at=now,
        updated_at=now,
    )


def _sorted_rows(rows: list[ParticipantRow]) -> list[ParticipantRow]:
    return sorted(rows, key=lambda r: (r.player_name.lower(), r.id))


def _rows_for(data: StoreSnapshot, event_id: str) -> list[ParticipantRow]:
    rows: list[ParticipantRow] = []
    for p in data.participants.values():
        player = data.players.get(p.player_id)
        if p.event_id != event_id or player is None:
            continue
        rows.append(
            ParticipantRow(
                id=p.id,
                player_id=p.player_id,
                player_name=player.name,
                points_r1=p.points_r1,
                points_r2=p.points_r2,
                points_r3=p.points_r3,
            )
        )
    return _sorted_rows(rows)


@dataclass
class InMemoryStore(Store):
    data: StoreSnapshot = field(default_factory=StoreSnapshot)
    queue: WriteQueue = field(default_factory=WriteQueue)

    @classmethod
    def create(cls) -> "InMemoryStore":
        return cls()

    def _persist(self, data: StoreSnapshot) -> None:
        pass

    def _write(self, mutator: Callable[[StoreSnapshot], T]) -> T:
        # The draft replaces `data` only after it has been persisted.
        def operation() -> T:
            draft = self.data.model_copy(deep=True)
            result = mutator(draft)
            self._persist(draft)
            self.data = draft
            return result

        return self.queue.run(operation)

    def create_player(self, name: str) -> Player:
        def mutate(data: StoreSnapshot) -> Player:
            _ensure_unique_name(data.players.values(), name)
            now = _now()
            player = Player(id=new_id("ply"), name=name.strip(), created_at=now, updated_at=now)
            data.players[player.id] = player
            return player

        return self._write(mutate)

    def import_players(self, names: Sequence[str]) -> list[Player]:
        def mutate(data: StoreSnapshot) -> list[Player]:
            existing = {_normalize_name(p.name) for p in data.players.values()}
            created: list[Player] = []
            now = _now()
            for name in names:
                key = _normalize_name(name)
                if not key or key in existing:
                    continue
                player = Player(id=new_id("ply"), name=name.strip(), created_at=now, updated_at=now)
                data.players[player.id] = player
                existing.add(key)
                created.append(player)
            return created

        created = self._write(mutate)
        logger.info("imported %d of %d player names", len(created), len(names))
        return created

    def get_player(self, player_id: str) -> Player | None:
        return self.data.players.get(player_id)

    def list_players(self, query: str = "", include_archived: bool = False) -> list[Player]:
        needle = query.strip().lower()
        players = [
            p
            for p in self.data.players.values()
            if (include_archived or not p.is_archived) and needle in p.name.lower()
        ]
        return sorted(players, key=lambda p: p.name.lower())

    def update_player(self, player_id: str, changes: dict[str, Any]) -> Player:
        def mutate(data: StoreSnapshot) -> Player:
            player = data.players.get(player_id)
            if player is None:
                raise NotFoundError("player", player_id)
            if changes.get("name") is not None:
                _ensure_unique_name(data.players.values(), changes["name"], exclude_id=player_id)
            _apply_changes(player, changes, frozenset())
            return player

        return self._write(mutate)

    def create_season(
        self, name: str, start_date: date | None = None, end_date: date | None = None
    ) -> Season:
        def mutate(data: StoreSnapshot) -> Season:
            now = _now()
            season = Season(
                id=new_id("ssn"),
                name=name.strip(),
                start_date=start_date,
                end_date=end_date,
                created_at=now,
                updated_at=now,
            )
            data.seasons[season.id] = season
            return season

        return self._write(mutate)

    def get_season(self, season_id: str) -> Season | None:
        return self.data.seasons.get(season_id)

    def list_seasons(self, include_archived: bool = False) -> list[Season]:
        seasons = [s for s in self.data.seasons.values() if include_archived or not s.is_archived]
        return sorted(seasons, key=lambda s: s.created_at, reverse=True)

    def update_season(self, season_id: str, changes: dict[str, Any]) -> Season:
        def mutate(data: StoreSnapshot) -> Season:
            season = data.seasons.get(season_id)
            if season is None:
                raise NotFoundError("season", season_id)
            _apply_changes(season, changes, SEASON_CLEARABLE)
            return season

        return self._write(mutate)

    def create_event(
        self,
        season_id: str,
        event_date: date,
        title: str | None = None,
        notes: str | None = None,
        prize_ranks: Sequence[int] = DEFAULT_PRIZE_RANKS,
    ) -> Event:
        def mutate(data: StoreSnapshot) -> Event:
            if season_id not in data.seasons:
                raise NotFoundError("season", season_id)
            event = _new_event(season_id, event_date, title, notes, prize_ranks)
            data.events[event.id] = event
            return event

        return self._write(mutate)

    def get_event(self, event_id: str) -> Event | None:
        return self.data.events.get(event_id)

    def list_events(
        self, season_id: str | None = None, include_archived: bool = False
    ) -> list[Event]:
        events = [
            e
            for e in self.data.events.values()
            if (season_id is None or e.season_id == season_id)
            and (include_archived or not e.is_archived)
        ]
        return sorted(events, key=lambda e: e.event_date, reverse=True)

    def update_event(self, event_id: str, changes: dict[str, Any]) -> Event:
        def mutate(data: StoreSnapshot) -> Event:
            event = self._open_event(data, event_id)
            _apply_changes(event, changes, EVENT_CLEARABLE)
            return event

        return self._write(mutate)

    def set_event_status(
        self, event_id: str, status: EventStatus, gate: LockGate | None = None
    ) -> Event:
        def mutate(data: StoreSnapshot) -> Event:
            event = data.events.get(event_id)
            if event is None:
                raise NotFoundError("event", event_id)
            _check_gate(event, status, lambda: _rows_for(data, event_id), gate)
            data.audit_log.append(_transition(event, status))
            return event

        return self._write(mutate)

    def add_participant(self, event_id: str, player_id: str) -> EventParticipant:
        def mutate(data: StoreSnapshot) -> EventParticipant:
            event = data.events.get(event_id)
            if event is None:
                raise NotFoundError("event", event_id)
            current = [p for p in data.participants.values() if p.event_id == event_id]
            _check_can_join(event, data.players.get(player_id), player_id, current)
            now = _now()
            participant = EventParticipant(
                id=new_id("prt"),
                event_id=event_id,
                player_id=player_id,
                created_at=now,
                updated_at=now,
            )
            data.participants[participant.id] = participant
            return participant

        return self._write(mutate)

    def update_scores(
        self, event_id: str, participant_id: str, changes: dict[str, int | None]
    ) -> EventParticipant:
        def mutate(data: StoreSnapshot) -> EventParticipant:
            self._open_event(data, event_id)
            participant = data.participants.get(participant_id)
            if participant is None or participant.event_id != event_id:
                raise NotFoundError("participant", participant_id)
            _apply_changes(participant, changes, SCORE_CLEARABLE)
            return participant

        return self._write(mutate)

    def list_participant_rows(self, event_id: str) -> list[ParticipantRow]:
        return _rows_for(self.data, event_id)

    def list_audit_log(self, entity_id: str | None = None) -> list[AuditEntry]:
        return [a for a in self.data.audit_log if entity_id is None or a.entity_id == entity_id]

    def export_snapshot(self) -> StoreSnapshot:
        return self.data.model_copy(deep=True)

    def import_snapshot(self, snapshot: StoreSnapshot) -> None:
        incoming = snapshot.model_copy(deep=True)

        def mutate(data: StoreSnapshot) -> None:
            for name in StoreSnapshot.model_fields:
                setattr(data, name, getattr(incoming, name))

        self._write(mutate)
        logger.info(
            "imported snapshot with %d players, %d events",
            len(incoming.players),
            len(incoming.events),
        )

    def reset(self) -> None:
        empty = StoreSnapshot()

        def mutate(data: StoreSnapshot) -> None:
            for name in StoreSnapshot.model_fields:
                setattr(data, name, getattr(empty, name))

        self._write(mutate)
        logger.info("store reset to an empty dataset")

    @staticmethod
    def _open_event(data: StoreSnapshot, event_id: str) -> Event:
        event = data.events.get(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        if event.status == "LOCKED":
            raise EventLockedError(event_id)
        return event


@dataclass
class JsonFileStore(InMemoryStore):
    path: Path = field(default_factory=lambda: Path("db") / "data.json")

    @classmethod
    def open(cls, path: Path) -> "JsonFileStore":
        path = Path(path)
        if path.exists():
            data = StoreSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
            logger.info("loaded store from %s", path)
            return cls(data=data, path=path)
        store = cls(path=path)
        store._persist(store.data)
        logger.info("created empty store at %s", path)
        return store

    def _persist(self, data: StoreSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(data.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)


def _item_to_model(item: dict[str, Any], model: type[M]) -> M:
    return model.model_validate({k: v for k, v in item.items() if k not in ("pk", "sk")})


def _all_pages(call: Callable[..., dict[str, Any]], **kwargs: Any) -> list[dict[str, Any]]:
    """Follow `LastEvaluatedKey` until a query or scan has returned every item."""

    items: list[dict[str, Any]] = []
    while True:
        resp = call(**kwargs)
        items.extend(resp.get("Items", []))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


@dataclass
class DynamoDBStore(Store):
    """Single-table layout.

    pk PLAYER / SEASON / EVENT with sk = entity id, pk EVENT#{event_id} with
    sk PARTICIPANT#{id}, pk AUDIT with sk {created_at}#{id}.
    """

    table_name: str
    queue: WriteQueue = field(default_factory=WriteQueue)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DynamoDBStore":
        if not settings.ddb_table_name:
            raise RuntimeError("DDB_TABLE_NAME is required for dynamodb store")
        return cls(table_name=settings.ddb_table_name)

    @property
    def _table(self):
        ddb = boto3.resource("dynamodb")
        return ddb.Table(self.table_name)

    def _put(self, pk: str, sk: str, model: BaseModel) -> None:
        self._table.put_item(Item={"pk": pk, "sk": sk, **model.model_dump(mode="json")})

    def _get(self, pk: str, sk: str, model: type[M]) -> M | None:
        resp = self._table.get_item(Key={"pk": pk, "sk": sk})
        item = resp.get("Item")
        if not item:
            return None
        return _item_to_model(item, model)

    def _query(self, pk: str, model: type[M], prefix: str | None = None) -> list[M]:
        condition = Key("pk").eq(pk)
        if prefix:
            condition = condition & Key("sk").begins_with(prefix)
        items = _all_pages(self._table.query, KeyConditionExpression=condition)
        return [_item_to_model(it, model) for it in items]

    def _participants(self, event_id: str) -> list[EventParticipant]:
        return self._query(f"EVENT#{event_id}", EventParticipant, prefix="PARTICIPANT#")

    def _put_participant(self, participant: EventParticipant) -> None:
        self._put(f"EVENT#{participant.event_id}", f"PARTICIPANT#{participant.id}", participant)

    def _put_audit(self, entry: AuditEntry) -> None:
        self._put("AUDIT", f"{entry.created_at.isoformat()}#{entry.id}", entry)

    def _open_event(self, event_id: str) -> Event:
        event = self.get_event(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        if event.status == "LOCKED":
            raise EventLockedError(event_id)
        return event

    def create_player(self, name: str) -> Player:
        def operation() -> Player:
            _ensure_unique_name(self._query("PLAYER", Player), name)
            now = _now()
            player = Player(id=new_id("ply"), name=name.strip(), created_at=now, updated_at=now)
            self._put("PLAYER", player.id, player)
            return player

        return self.queue.run(operation)

    def import_players(self, names: Sequence[str]) -> list[Player]:
        def operation() -> list[Player]:
            existing = {_normalize_name(p.name) for p in self._query("PLAYER", Player)}
            created: list[Player] = []
            now = _now()
            with self._table.batch_writer() as batch:
                for name in names:
                    key = _normalize_name(name)
                    if not key or key in existing:
                        continue
                    player = Player(
                        id=new_id("ply"), name=name.strip(), created_at=now, updated_at=now
                    )
                    batch.put_item(
                        Item={"pk": "PLAYER", "sk": player.id, **player.model_dump(mode="json")}
                    )
                    existing.add(key)
                    created.append(player)
            return created

        created = self.queue.run(operation)
        logger.info("imported %d of %d player names", len(created), len(names))
        return created

    def get_player(self, player_id: str) -> Player | None:
        return self._get("PLAYER", player_id, Player)

    def list_players(self, query: str = "", include_archived: bool = False) -> list[Player]:
        needle = query.strip().lower()
        players = [
            p
            for p in self._query("PLAYER", Player)
            if (include_archived or not p.is_archived) and needle in p.name.lower()
        ]
        return sorted(players, key=lambda p: p.name.lower())

    def update_player(self, player_id: str, changes: dict[str, Any]) -> Player:
        def operation() -> Player:
            player = self.get_player(player_id)
            if player is None:
                raise NotFoundError("player", player_id)
            if changes.get("name") is not None:
                _ensure_unique_name(
                    self._query("PLAYER", Player), changes["name"], exclude_id=player_id
                )
            if _apply_changes(player, changes, frozenset()):
                self._put("PLAYER", player.id, player)
            return player

        return self.queue.run(operation)

    def create_season(
        self, name: str, start_date: date | None = None, end_date: date | None = None
    ) -> Season:
        def operation() -> Season:
            now = _now()
            season = Season(
                id=new_id("ssn"),
                name=name.strip(),
                start_date=start_date,
                end_date=end_date,
                created_at=now,
                updated_at=now,
            )
            self._put("SEASON", season.id, season)
            return season

        return self.queue.run(operation)

    def get_season(self, season_id: str) -> Season | None:
        return self._get("SEASON", season_id, Season)

    def list_seasons(self, include_archived: bool = False) -> list[Season]:
        seasons = [
            s for s in self._query("SEASON", Season) if include_archived or not s.is_archived
        ]
        return sorted(seasons, key=lambda s: s.created_at, reverse=True)

    def update_season(self, season_id: str, changes: dict[str, Any]) -> Season:
        def operation() -> Season:
            season = self.get_season(season_id)
            if season is None:
                raise NotFoundError("season", season_id)
            if _apply_changes(season, changes, SEASON_CLEARABLE):
                self._put("SEASON", season.id, season)
            return season

        return self.queue.run(operation)

    def create_event(
        self,
        season_id: str,
        event_date: date,
        title: str | None = None,
        notes: str | None = None,
        prize_ranks: Sequence[int] = DEFAULT_PRIZE_RANKS,
    ) -> Event:
        def operation() -> Event:
            if self.get_season(season_id) is None:
                raise NotFoundError("season", season_id)
            event = _new_event(season_id, event_date, title, notes, prize_ranks)
            self._put("EVENT", event.id, event)
            return event

        return self.queue.run(operation)

    def get_event(self, event_id: str) -> Event | None:
        return self._get("EVENT", event_id, Event)

    def list_events(
        self, season_id: str | None = None, include_archived: bool = False
    ) -> list[Event]:
        events = [
            e
            for e in self._query("EVENT", Event)
            if (season_id is None or e.season_id == season_id)
            and (include_archived or not e.is_archived)
        ]
        return sorted(events, key=lambda e: e.event_date, reverse=True)

    def update_event(self, event_id: str, changes: dict[str, Any]) -> Event:
        def operation() -> Event:
            event = self._open_event(event_id)
            if _apply_changes(event, changes, EVENT_CLEARABLE):
                self._put("EVENT", event.id, event)
            return event

        return self.queue.run(operation)

    def set_event_status(
        self, event_id: str, status: EventStatus, gate: LockGate | None = None
    ) -> Event:
        def operation() -> Event:
            event = self.get_event(event_id)
            if event is None:
                raise NotFoundError("event", event_id)
            _check_gate(event, status, lambda: self.list_participant_rows(event_id), gate)
            entry = _transition(event, status)
            self._put("EVENT", event.id, event)
            self._put_audit(entry)
            return event

        return self.queue.run(operation)

    def add_participant(self, event_id: str, player_id: str) -> EventParticipant:
        def operation() -> EventParticipant:
            event = self.get_event(event_id)
            if event is None:
                raise NotFoundError("event", event_id)
            current = self._participants(event_id)
            _check_can_join(event, self.get_player(player_id), player_id, current)
            now = _now()
            participant = EventParticipant(
                id=new_id("prt"),
                event_id=event_id,
                player_id=player_id,
                created_at=now,
                updated_at=now,
            )
            self._put_participant(participant)
            return participant

        return self.queue.run(operation)

    def update_scores(
        self, event_id: str, participant_id: str, changes: dict[str, int | None]
    ) -> EventParticipant:
        def operation() -> EventParticipant:
            self._open_event(event_id)
            participant = self._get(
                f"EVENT#{event_id}", f"PARTICIPANT#{participant_id}", EventParticipant
            )
            if participant is None:
                raise NotFoundError("participant", participant_id)
            if _apply_changes(participant, changes, SCORE_CLEARABLE):
                self._put_participant(participant)
            return participant

        return self.queue.run(operation)

    def list_participant_rows(self, event_id: str) -> list[ParticipantRow]:
        players = {p.id: p for p in self._query("PLAYER", Player)}
        rows = [
            ParticipantRow(
                id=p.id,
                player_id=p.player_id,
                player_name=players[p.player_id].name,
                points_r1=p.points_r1,
                points_r2=p.points_r2,
                points_r3=p.points_r3,
            )
            for p in self._participants(event_id)
            if p.player_id in players
        ]
        return _sorted_rows(rows)

    def list_audit_log(self, entity_id: str | None = None) -> list[AuditEntry]:
        entries = self._query("AUDIT", AuditEntry)
        return [a for a in entries if entity_id is None or a.entity_id == entity_id]

    def export_snapshot(self) -> StoreSnapshot:
        events = self._query("EVENT", Event)
        participants = [p for e in events for p in self._participants(e.id)]
        return StoreSnapshot(
            players={p.id: p for p in self._query("PLAYER", Player)},
            seasons={s.id: s for s in self._query("SEASON", Season)},
            events={e.id: e for e in events},
            participants={p.id: p for p in participants},
            audit_log=self._query("AUDIT", AuditEntry),
        )

    def import_snapshot(self, snapshot: StoreSnapshot) -> None:
        def operation() -> None:
            table = self._table
            self._delete_all(table)
            with table.batch_writer() as batch:
                for pk, models in (
                    ("PLAYER", snapshot.players.values()),
                    ("SEASON", snapshot.seasons.values()),
                    ("EVENT", snapshot.events.values()),
                ):
                    for model in models:
                        batch.put_item(
                            Item={"pk": pk, "sk": model.id, **model.model_dump(mode="json")}
                        )
                for p in snapshot.participants.values():
                    batch.put_item(
                        Item={
                            "pk": f"EVENT#{p.event_id}",
                            "sk": f"PARTICIPANT#{p.id}",
                            **p.model_dump(mode="json"),
                        }
                    )
                for entry in snapshot.audit_log:
                    batch.put_item(
                        Item={
                            "pk": "AUDIT",
                            "sk": f"{entry.created_at.isoformat()}#{entry.id}",
                            **entry.model_dump(mode="json"),
                        }
                    )

        self.queue.run(operation)
        logger.info("imported snapshot into table %s", self.table_name)

    def reset(self) -> None:
        self.queue.run(lambda: self._delete_all(self._table))
        logger.info("table %s reset to an empty dataset", self.table_name)

    @staticmethod
    def _delete_all(table) -> None:
        existing = _all_pages(table.scan, ProjectionExpression="pk, sk")
        with table.batch_writer() as batch:
            for key in existing:
                batch.delete_item(Key={"pk": key["pk"], "sk": key["sk"]})


def build_store(settings: Settings | None = None) -> Store:
    settings = settings or Settings.from_env()
    kind = settings.store_backend
    if kind == "dynamodb":
        return DynamoDBStore.from_settings(settings)
    if kind == "file":
        return JsonFileStore.open(settings.data_path)
    if kind != "inmemory":
        raise RuntimeError(f"unknown STORE_BACKEND: {kind}")
    return InMemoryStore.create()
