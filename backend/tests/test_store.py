from __future__ import annotations

import threading
import time
from datetime import date

import pytest

from kaartavond.domain import MAX_PARTICIPANTS
from kaartavond.errors import (
    ConflictError,
    EventLockedError,
    InvalidTransitionError,
    LockRefusedError,
    NotFoundError,
)
from kaartavond.ranking import can_lock_event
from kaartavond.store import InMemoryStore, JsonFileStore, Store, WriteQueue, _all_pages


def _event(store: Store):
    season = store.create_season("2024")
    return store.create_event(season.id, date(2024, 2, 1))


def _wait_for(condition, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.001)


def test_create_player_rejects_duplicate_name_ignoring_case(store):
    """Player names are unique regardless of case and surrounding spaces."""

    store.create_player("  Anna  ")

    with pytest.raises(ConflictError):
        store.create_player("anna")


def test_import_players_skips_known_and_repeated_names(store):
    """Bulk import adds each new name once and leaves existing players alone."""

    store.create_player("Anna")

    created = store.import_players(["anna", "Bert", "BERT", "Cees"])
    assert [p.name for p in created] == ["Bert", "Cees"]
    assert [p.name for p in store.list_players()] == ["Anna", "Bert", "Cees"]


def test_list_players_filters_archived_and_query(store):
    """Archived players are hidden unless requested; query matches substrings."""

    anna = store.create_player("Anna")
    store.create_player("Hanna")
    store.update_player(anna.id, {"is_archived": True})

    assert [p.name for p in store.list_players(query="ann")] == ["Hanna"]
    assert [p.name for p in store.list_players(include_archived=True)] == ["Anna", "Hanna"]


def test_add_participant_rules(store):
    """Unknown, archived and duplicate players cannot join an event."""

    event = _event(store)
    anna = store.create_player("Anna")
    old = store.create_player("Old")
    store.update_player(old.id, {"is_archived": True})

    store.add_participant(event.id, anna.id)

    with pytest.raises(ConflictError):
        store.add_participant(event.id, anna.id)
    with pytest.raises(ConflictError):
        store.add_participant(event.id, old.id)
    with pytest.raises(NotFoundError):
        store.add_participant(event.id, "ply_missing")
    with pytest.raises(NotFoundError):
        store.add_participant("evt_missing", anna.id)


def test_add_participant_caps_event_size(store):
    """No more than the maximum number of participants can join."""

    event = _event(store)
    players = store.import_players([f"Player {i}" for i in range(MAX_PARTICIPANTS + 1)])
    for player in players[:MAX_PARTICIPANTS]:
        store.add_participant(event.id, player.id)

    with pytest.raises(ConflictError):
        store.add_participant(event.id, players[-1].id)


def test_participant_rows_join_names_and_sort_by_name(store):
    """Rows carry the player name and scores, ordered by name."""

    event = _event(store)
    bert = store.create_player("bert")
    anna = store.create_player("Anna")
    p_bert = store.add_participant(event.id, bert.id)
    store.add_participant(event.id, anna.id)
    store.update_scores(event.id, p_bert.id, {"points_r1": 12, "points_r2": 7})

    rows = store.list_participant_rows(event.id)
    assert [r.player_name for r in rows] == ["Anna", "bert"]
    assert (rows[1].points_r1, rows[1].points_r2, rows[1].points_r3) == (12, 7, None)


def test_update_scores_clears_with_none_and_checks_event(store):
    """None clears a round; a participant of another event is not found."""

    event = _event(store)
    other = store.create_event(event.season_id, date(2024, 3, 1))
    anna = store.create_player("Anna")
    participant = store.add_participant(event.id, anna.id)

    store.update_scores(event.id, participant.id, {"points_r1": 5})
    updated = store.update_scores(event.id, participant.id, {"points_r1": None})
    assert updated.points_r1 is None

    with pytest.raises(NotFoundError):
        store.update_scores(other.id, participant.id, {"points_r1": 1})


def test_locked_event_rejects_mutations_until_unlocked(store):
    """Scores, participants and metadata are frozen while locked."""

    event = _event(store)
    anna = store.create_player("Anna")
    bert = store.create_player("Bert")
    participant = store.add_participant(event.id, anna.id)

    locked = store.set_event_status(event.id, "LOCKED")
    assert locked.status == "LOCKED"
    assert locked.locked_at is not None

    with pytest.raises(EventLockedError):
        store.update_scores(event.id, participant.id, {"points_r1": 1})
    with pytest.raises(EventLockedError):
        store.add_participant(event.id, bert.id)
    with pytest.raises(EventLockedError):
        store.update_event(event.id, {"title": "x"})

    unlocked = store.set_event_status(event.id, "OPEN")
    assert unlocked.status == "OPEN"
    assert unlocked.locked_at is None
    store.update_scores(event.id, participant.id, {"points_r1": 1})


def test_status_transitions_are_audited_and_not_repeatable(store):
    """Lock and unlock each append an audit entry; repeating one conflicts."""

    event = _event(store)

    store.set_event_status(event.id, "LOCKED")
    with pytest.raises(InvalidTransitionError):
        store.set_event_status(event.id, "LOCKED")
    store.set_event_status(event.id, "OPEN")
    with pytest.raises(InvalidTransitionError):
        store.set_event_status(event.id, "OPEN")

    entries = store.list_audit_log(entity_id=event.id)
    assert [e.action for e in entries] == ["LOCKED", "UNLOCKED"]
    assert entries[0].new_value == {"status": "LOCKED"}


def test_failed_write_leaves_data_untouched(store):
    """A write that raises does not leave partial changes behind."""

    anna = store.create_player("Anna")
    store.create_player("Bert")

    with pytest.raises(ConflictError):
        store.update_player(anna.id, {"name": "bert"})
    assert store.get_player(anna.id).name == "Anna"


def test_lock_gate_judges_the_current_rows_inside_the_write(store):
    """The gate sees the latest scores and a refusal leaves the event open."""

    event = _event(store)
    anna = store.create_player("Anna")
    participant = store.add_participant(event.id, anna.id)
    store.update_scores(event.id, participant.id, {"points_r1": 1, "points_r2": 2, "points_r3": 3})
    store.update_scores(event.id, participant.id, {"points_r3": None})

    def gate(_event, rows):
        return can_lock_event(rows, [])

    with pytest.raises(LockRefusedError) as exc_info:
        store.set_event_status(event.id, "LOCKED", gate=gate)
    assert exc_info.value.reasons == ["Missing round scores for: Anna"]
    assert store.get_event(event.id).status == "OPEN"
    assert store.list_audit_log() == []

    store.update_scores(event.id, participant.id, {"points_r3": 3})
    assert store.set_event_status(event.id, "LOCKED", gate=gate).status == "LOCKED"


def test_lock_gate_is_not_consulted_for_unlock_or_repeated_lock(store):
    """Repeating a transition conflicts before the gate runs."""

    event = _event(store)
    calls = []

    def gate(_event, rows):
        calls.append(rows)
        return can_lock_event(rows, [])

    store.set_event_status(event.id, "LOCKED")
    with pytest.raises(InvalidTransitionError):
        store.set_event_status(event.id, "LOCKED", gate=gate)
    store.set_event_status(event.id, "OPEN", gate=gate)
    assert calls == []


def test_reset_empties_the_store(store):
    """After a reset no entity or audit entry remains."""

    event = _event(store)
    anna = store.create_player("Anna")
    store.add_participant(event.id, anna.id)
    store.set_event_status(event.id, "LOCKED")

    store.reset()

    assert store.list_players(include_archived=True) == []
    assert store.list_seasons(include_archived=True) == []
    assert store.list_events(include_archived=True) == []
    assert store.list_participant_rows(event.id) == []
    assert store.list_audit_log() == []
    store.create_player("Anna")


def test_snapshot_export_and_import_replace_all_data():
    """Importing a snapshot replaces the complete dataset."""

    source = InMemoryStore.create()
    event = _event(source)
    source.create_player("Anna")
    snapshot = source.export_snapshot()

    target = InMemoryStore.create()
    target.create_player("Someone else")
    target.import_snapshot(snapshot)

    assert [p.name for p in target.list_players()] == ["Anna"]
    assert target.get_event(event.id) == event


def test_dynamodb_snapshot_round_trip(dynamodb_store):
    """A table export restores the same dataset, and import replaces old items."""

    event = _event(dynamodb_store)
    anna = dynamodb_store.create_player("Anna")
    participant = dynamodb_store.add_participant(event.id, anna.id)
    dynamodb_store.update_scores(event.id, participant.id, {"points_r1": 4})
    dynamodb_store.set_event_status(event.id, "LOCKED")
    snapshot = dynamodb_store.export_snapshot()

    assert list(snapshot.participants) == [participant.id]
    assert [e.action for e in snapshot.audit_log] == ["LOCKED"]

    dynamodb_store.create_player("Bert")
    dynamodb_store.import_snapshot(snapshot)

    assert [p.name for p in dynamodb_store.list_players()] == ["Anna"]
    assert dynamodb_store.get_event(event.id) == snapshot.events[event.id]
    assert dynamodb_store.list_participant_rows(event.id)[0].points_r1 == 4
    assert dynamodb_store.export_snapshot() == snapshot


def test_all_pages_follows_last_evaluated_key():
    """Paged DynamoDB responses are read until no continuation key is left."""

    pages = {
        None: {"Items": [{"sk": "a"}], "LastEvaluatedKey": {"sk": "a"}},
        "a": {"Items": [{"sk": "b"}], "LastEvaluatedKey": {"sk": "b"}},
        "b": {"Items": [{"sk": "c"}]},
    }
    calls = []

    def query(**kwargs):
        calls.append(kwargs)
        start = kwargs.get("ExclusiveStartKey")
        return pages[start["sk"] if start else None]

    items = _all_pages(query, KeyConditionExpression="cond")

    assert [it["sk"] for it in items] == ["a", "b", "c"]
    assert [c.get("ExclusiveStartKey") for c in calls] == [None, {"sk": "a"}, {"sk": "b"}]
    assert all(c["KeyConditionExpression"] == "cond" for c in calls)


def test_json_file_store_persists_every_write(tmp_path):
    """A reopened file store sees all completed writes."""

    path = tmp_path / "db" / "data.json"
    store = JsonFileStore.open(path)
    assert path.exists()

    event = _event(store)
    anna = store.create_player("Anna")
    participant = store.add_participant(event.id, anna.id)
    store.update_scores(event.id, participant.id, {"points_r1": 9})
    store.set_event_status(event.id, "LOCKED")

    reopened = JsonFileStore.open(path)
    assert reopened.get_event(event.id).status == "LOCKED"
    assert reopened.list_participant_rows(event.id)[0].points_r1 == 9
    assert [e.action for e in reopened.list_audit_log()] == ["LOCKED"]


def test_write_queue_runs_operations_in_arrival_order():
    """Queued writes run one at a time, first come first served."""

    queue = WriteQueue()
    order: list[int] = []
    started = threading.Event()
    release = threading.Event()

    def first() -> None:
        started.set()
        release.wait(timeout=5)
        order.append(0)

    threads = [threading.Thread(target=queue.run, args=(first,))]
    threads[0].start()
    started.wait(timeout=5)

    for i in range(1, 5):
        thread = threading.Thread(target=queue.run, args=(lambda i=i: order.append(i),))
        threads.append(thread)
        thread.start()
        _wait_for(lambda i=i: queue._next_ticket == i + 1)

    assert order == []
    release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert order == [0, 1, 2, 3, 4]


def test_write_queue_continues_after_a_failed_operation():
    """An operation that raises does not block later writes."""

    queue = WriteQueue()

    def boom() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        queue.run(boom)
    assert queue.run(lambda: 42) == 42
