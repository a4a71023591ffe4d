from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum

from .config import Settings
from .domain import (
    AddParticipantRequest,
    AuditEntry,
    CreatedResponse,
    CreateEventRequest,
    CreatePlayerRequest,
    CreateSeasonRequest,
    Event,
    EventDetailResponse,
    ImportPlayersRequest,
    ImportPlayersResponse,
    LockDecision,
    ParticipantRow,
    Player,
    RankingResult,
    Season,
    SeasonRanking,
    StoreSnapshot,
    UpdateEventRequest,
    UpdatePlayerRequest,
    UpdateScoresRequest,
    UpdateSeasonRequest,
)
from .errors import ConflictError, LockRefusedError, NotFoundError
from .ranking import can_lock_event, compute_ranking
from .season import compute_season_ranking
from .store import Store, build_store

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, store: Store | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    app = FastAPI(title="Kaartavond Scoring")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if store is None:
        store = build_store(settings)
    logger.info("using %s", type(store).__name__)

    @app.exception_handler(NotFoundError)
    async def not_found(_request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict(_request: Request, exc: ConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(LockRefusedError)
    async def lock_refused(_request: Request, exc: LockRefusedError):
        logger.warning("lock refused for event %s: %s", exc.event_id, "; ".join(exc.reasons))
        return JSONResponse(
            status_code=400, content={"detail": {"message": str(exc), "reasons": exc.reasons}}
        )

    def event_or_404(event_id: str) -> Event:
        event = store.get_event(event_id)
        if event is None:
            raise HTTPException(status_code=404, detail="event not found")
        return event

    def evaluate(event: Event) -> tuple[RankingResult, LockDecision]:
        return judge(event, store.list_participant_rows(event.id))

    def judge(event: Event, rows: list[ParticipantRow]) -> tuple[RankingResult, LockDecision]:
        ranking = compute_ranking(
            rows, event.prize_ranks, strict_round_ties=settings.strict_round_ties
        )
        return ranking, can_lock_event(ranking.participants, ranking.tie_errors)

    @app.get("/health")
    def health():
        return {"ok": True}

    # Players

    @app.get("/api/players", response_model=list[Player])
    def list_players(query: str = "", include_archived: bool = False):
        return store.list_players(query=query, include_archived=include_archived)

    @app.post("/api/players", response_model=CreatedResponse, status_code=201)
    def create_player(req: CreatePlayerRequest):
        player = store.create_player(req.name)
        return CreatedResponse(id=player.id)

    @app.post("/api/players/import", response_model=ImportPlayersResponse)
    def import_players(req: ImportPlayersRequest):
        created = store.import_players(req.names)
        return ImportPlayersResponse(added=len(created), players=created)

    @app.patch("/api/players/{player_id}", response_model=Player)
    def update_player(player_id: str, req: UpdatePlayerRequest):
        return store.update_player(player_id, req.model_dump(exclude_unset=True))

    # Seasons

    @app.get("/api/seasons", response_model=list[Season])
    def list_seasons(include_archived: bool = False):
        return store.list_seasons(include_archived=include_archived)

    @app.post("/api/seasons", response_model=CreatedResponse, status_code=201)
    def create_season(req: CreateSeasonRequest):
        season = store.create_season(req.name, req.start_date, req.end_date)
        return CreatedResponse(id=season.id)

    @app.patch("/api/seasons/{season_id}", response_model=Season)
    def update_season(season_id: str, req: UpdateSeasonRequest):
        return store.update_season(season_id, req.model_dump(exclude_unset=True))

    @app.get(
        "/api/seasons/{season_id}/ranking",
        response_model=SeasonRanking,
        response_model_exclude_none=True,
    )
    def season_ranking(season_id: str):
        if store.get_season(season_id) is None:
            raise HTTPException(status_code=404, detail="season not found")
        events = store.list_events(season_id=season_id, include_archived=True)
        rows = {
            e.id: store.list_participant_rows(e.id)
            for e in events
            if not e.is_archived and e.status == "LOCKED"
        }
        return compute_season_ranking(events, rows)

    # Events

    @app.get("/api/events", response_model=list[Event])
    def list_events(season_id: str | None = None, include_archived: bool = False):
        return store.list_events(season_id=season_id, include_archived=include_archived)

    @app.post("/api/events", response_model=CreatedResponse, status_code=201)
    def create_event(req: CreateEventRequest):
        event = store.create_event(
            req.season_id, req.event_date, req.title, req.notes, req.prize_ranks
        )
        return CreatedResponse(id=event.id)

    @app.get("/api/events/{event_id}", response_model=EventDetailResponse)
    def get_event(event_id: str):
        event = event_or_404(event_id)
        ranking, decision = evaluate(event)
        return EventDetailResponse(
            **event.model_dump(),
            participants=ranking.participants,
            round_winners=ranking.round_winners,
            event_winner=ranking.event_winner,
            tie_errors=ranking.tie_errors,
            round_ties=ranking.round_ties,
            can_lock=decision.allowed,
            lock_reasons=decision.reasons,
        )

    @app.patch("/api/events/{event_id}", response_model=Event)
    def update_event(event_id: str, req: UpdateEventRequest):
        return store.update_event(event_id, req.model_dump(exclude_unset=True))

    @app.post(
        "/api/events/{event_id}/participants", response_model=CreatedResponse, status_code=201
    )
    def add_participant(event_id: str, req: AddParticipantRequest):
        participant = store.add_participant(event_id, req.player_id)
        return CreatedResponse(id=participant.id)

    @app.patch("/api/events/{event_id}/participants/{participant_id}")
    def update_scores(event_id: str, participant_id: str, req: UpdateScoresRequest):
        store.update_scores(event_id, participant_id, req.model_dump(exclude_unset=True))
        return {"ok": True}

    @app.post("/api/events/{event_id}/lock")
    def lock_event(event_id: str):
        store.set_event_status(event_id, "LOCKED", gate=lambda event, rows: judge(event, rows)[1])
        return {"ok": True}

    @app.post("/api/events/{event_id}/unlock")
    def unlock_event(event_id: str):
        store.set_event_status(event_id, "OPEN")
        return {"ok": True}

    # Audit log and backups

    @app.get("/api/audit-log", response_model=list[AuditEntry])
    def audit_log(entity_id: str | None = None):
        return store.list_audit_log(entity_id=entity_id)

    @app.get("/api/data/export", response_model=StoreSnapshot)
    def export_data():
        return store.export_snapshot()

    @app.post("/api/data/import")
    def import_data(snapshot: StoreSnapshot):
        store.import_snapshot(snapshot)
        return {"ok": True}

    @app.post("/api/data/reset")
    def reset_data():
        store.reset()
        return {"ok": True}

    return app


app = create_app()
handler = Mangum(app)
