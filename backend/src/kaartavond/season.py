from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from .domain import Event, ParticipantRow, SeasonRanking, SeasonRankingRow
from .ranking import rank_desc

NOT_AVAILABLE_MESSAGE = "The season ranking is available once every event of the season is locked."


@dataclass
class _PlayerTotal:
    player_id: str
    player_name: str
    total: int = 0
    appearances: int = 0


def compute_season_ranking(
    events: Sequence[Event], participants_by_event: Mapping[str, Sequence[ParticipantRow]]
) -> SeasonRanking:
    """Sum locked events of one season into a player ranking.

    `events` are all events of the season, archived ones included; archived
    events are ignored. Rows missing a round score do not count.
    """

    relevant = [e for e in events if not e.is_archived]
    open_ids = [e.id for e in relevant if e.status != "LOCKED"]
    if open_ids:
        return SeasonRanking(
            available=False, message=NOT_AVAILABLE_MESSAGE, open_event_ids=open_ids
        )

    totals: dict[str, _PlayerTotal] = {}
    for event in relevant:
        for row in participants_by_event.get(event.id, []):
            if not row.has_all_points:
                continue
            entry = totals.setdefault(row.player_id, _PlayerTotal(row.player_id, row.player_name))
            entry.total += row.points_r1 + row.points_r2 + row.points_r3
            entry.appearances += 1

    ranks, tie = rank_desc((t.player_id, t.total, t.player_name) for t in totals.values())
    rows = [
        SeasonRankingRow(
            rank=ranks[t.player_id],
            player_id=t.player_id,
            player_name=t.player_name,
            season_total=t.total,
            appearances=t.appearances,
        )
        for t in totals.values()
    ]
    rows.sort(key=lambda r: r.rank)
    return SeasonRanking(available=True, ranking=rows, tie_warning=tie)
