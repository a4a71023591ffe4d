from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Sequence

from .domain import (
    DEFAULT_PRIZE_RANKS,
    MAX_PARTICIPANTS,
    ROUNDS,
    EventWinner,
    LockDecision,
    ParticipantRow,
    PrizeWinner,
    RankedParticipant,
    RankingResult,
    RoundWinners,
)


@dataclass(frozen=True)
class RoundRanks:
    ranks: dict[str, int]
    tie: bool


def rank_desc(items: Iterable[tuple[str, int, str]]) -> tuple[dict[str, int], bool]:
    """Rank `(key, score, name)` triples by score, highest first.

    Ranks run 1..k without gaps or duplicates. Equal scores are ordered by
    name, then key, and reported through the returned tie flag instead of
    sharing a rank.
    """

    ordered = sorted(items, key=lambda x: (-x[1], x[2], x[0]))
    ranks = {key: idx for idx, (key, _score, _name) in enumerate(ordered, start=1)}
    scores = [score for _key, score, _name in ordered]
    return ranks, len(set(scores)) != len(scores)


def compute_round_ranks(participants: Sequence[ParticipantRow], round_no: int) -> RoundRanks:
    # Only the round's own score counts; earlier rounds may still be empty.
    eligible = [
        (p.id, p.points(round_no), p.player_name)
        for p in participants
        if p.points(round_no) is not None
    ]
    ranks, tie = rank_desc(eligible)
    return RoundRanks(ranks=ranks, tie=tie)


def _total_points(row: ParticipantRow) -> int | None:
    if not row.has_all_points:
        return None
    return sum(row.points(r) for r in ROUNDS)


def _total_tie_errors(participants: Sequence[RankedParticipant]) -> list[str]:
    counts = Counter(p.total_points for p in participants if p.total_points is not None)
    errors: list[str] = []
    for total in sorted((t for t, n in counts.items() if n > 1), reverse=True):
        names = sorted(p.player_name for p in participants if p.total_points == total)
        errors.append(f"Tie in final totals at {total} points: {', '.join(names)}")
    return errors


def _round_winners(
    participants: Sequence[RankedParticipant], round_no: int, prize_ranks: Sequence[int]
) -> RoundWinners:
    winners: list[PrizeWinner] = []
    seen_names: set[str] = set()

    for rank in prize_ranks:
        holder = next((p for p in participants if p.rank(round_no) == rank), None)
        if holder is None:
            continue
        target = holder.points(round_no)
        for p in participants:
            if p.points(round_no) == target and p.player_name not in seen_names:
                winners.append(PrizeWinner(rank=rank, player_name=p.player_name))
                seen_names.add(p.player_name)

    return RoundWinners(round=round_no, winners=winners)


def _event_winner(participants: Sequence[RankedParticipant]) -> EventWinner | None:
    complete = [p for p in participants if p.total_points is not None]
    if not complete:
        return None
    ranks, _tie = rank_desc((p.id, p.total_points, p.player_name) for p in complete)
    top = next(p for p in complete if ranks[p.id] == 1)
    if any(p.id != top.id and p.total_points == top.total_points for p in complete):
        # A shared top total has no winner until the tie is resolved.
        return None
    return EventWinner(
        player_id=top.player_id, player_name=top.player_name, total_points=top.total_points
    )


def compute_ranking(
    rows: Sequence[ParticipantRow],
    prize_ranks: Sequence[int] = DEFAULT_PRIZE_RANKS,
    strict_round_ties: bool = False,
) -> RankingResult:
    """Derive totals, per-round ranks, ties and prize winners for one event.

    `prize_ranks` is expected to hold distinct positions; request models
    validate this before the data reaches here. With `strict_round_ties`
    a tie in any single round is reported next to final-total ties.
    """

    fields = set(ParticipantRow.model_fields)
    participants = [
        RankedParticipant(**row.model_dump(include=fields), total_points=_total_points(row))
        for row in rows
    ]

    round_results = {r: compute_round_ranks(participants, r) for r in ROUNDS}
    for p in participants:
        p.rank_r1 = round_results[1].ranks.get(p.id)
        p.rank_r2 = round_results[2].ranks.get(p.id)
        p.rank_r3 = round_results[3].ranks.get(p.id)

    tie_errors = _total_tie_errors(participants)
    if strict_round_ties:
        tie_errors.extend(f"Tie in round {r} scores" for r in ROUNDS if round_results[r].tie)

    return RankingResult(
        participants=participants,
        tie_errors=tie_errors,
        round_ties={r: round_results[r].tie for r in ROUNDS},
        round_winners=[_round_winners(participants, r, prize_ranks) for r in ROUNDS],
        event_winner=_event_winner(participants),
    )


def can_lock_event(
    participants: Sequence[ParticipantRow],
    tie_errors: Sequence[str],
    max_participants: int = MAX_PARTICIPANTS,
) -> LockDecision:
    reasons: list[str] = []

    if not 1 <= len(participants) <= max_participants:
        reasons.append(f"Participant count must be between 1 and {max_participants}")

    missing = [p.player_name for p in participants if not p.has_all_points]
    if missing:
        reasons.append(f"Missing round scores for: {', '.join(missing)}")

    if tie_errors:
        reasons.append("Ties in the final standings must be resolved before locking")

    return LockDecision(allowed=not reasons, reasons=reasons)
