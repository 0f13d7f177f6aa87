"""Tests for state derivation."""

import random
from datetime import datetime, timezone

import pytest

from trunk.core.derive import (
    count_sprouts_by_branch,
    derive_state,
    derive_sun_available,
    derive_water_available,
    get_active_sprouts,
    get_all_water_entries,
    get_completed_sprouts,
    get_leaf,
    get_leaves_for_twig,
    get_sprouts_for_leaf,
    get_sprouts_for_twig,
    was_shone_this_week,
    was_sprout_watered_this_week,
    was_sprout_watered_today,
)
from trunk.types import event_to_dict

UTC = timezone.utc

TWIG = "branch-0-twig-0"


def _history(ev):
    """A varied log with distinct timestamps."""
    return [
        ev.leaf("2025-01-01T08:00:00.000Z"),
        ev.planted("2025-01-01T09:00:00.000Z", leaf_id="leaf-1"),
        ev.planted(
            "2025-01-02T09:00:00.000Z",
            sprout_id="sprout-2",
            twig_id="branch-3-twig-1",
            title="Fix bike",
            season="1m",
            environment="firm",
            soil_cost=5,
        ),
        ev.watered("2025-01-03T09:00:00.000Z"),
        ev.watered("2025-01-04T09:00:00.000Z", sprout_id="sprout-2", content="New chain"),
        ev.shone("2025-01-05T09:00:00.000Z"),
        ev.harvested("2025-01-15T09:00:00.000Z", result=5, capacity_gained=0.27),
        ev.uprooted("2025-01-20T09:00:00.000Z", sprout_id="sprout-2", soil_returned=1.25),
    ]


class TestEmptyAndBasics:
    def test_empty_log(self):
        state = derive_state([])
        assert state.soil_capacity == 10
        assert state.soil_available == 10
        assert state.sprouts == {}
        assert state.sun_entries == []

    def test_plant_spends_soil(self, ev):
        state = derive_state([ev.planted("2025-01-01T09:00:00.000Z")])
        sprout = state.sprouts["sprout-1"]
        assert sprout.state == "active"
        assert sprout.planted_at == "2025-01-01T09:00:00.000Z"
        assert state.soil_available == 8
        assert state.active_sprouts_by_twig[TWIG] == [sprout]

    def test_water_recovers_soil(self, ev):
        state = derive_state(
            [ev.planted("2025-01-01T09:00:00.000Z"), ev.watered("2025-01-02T09:00:00.000Z")]
        )
        assert state.soil_available == 8.05
        assert len(state.sprouts["sprout-1"].water_entries) == 1

    def test_sun_recovers_soil(self, ev):
        state = derive_state(
            [ev.planted("2025-01-01T09:00:00.000Z"), ev.shone("2025-01-02T09:00:00.000Z")]
        )
        assert state.soil_available == 8.35
        assert state.sun_entries[0].twig_label == "movement"

    def test_accepts_wire_dicts(self, ev):
        state = derive_state([event_to_dict(ev.planted("2025-01-01T09:00:00.000Z")), {"type": "junk"}])
        assert "sprout-1" in state.sprouts


class TestScenarios:
    def test_plant_then_harvest(self, ev):
        state = derive_state(
            [
                ev.planted("2025-01-01T09:00:00.000Z", soil_cost=2),
                ev.harvested("2025-01-15T09:00:00.000Z", result=4, capacity_gained=0.2),
            ]
        )
        sprout = state.sprouts["sprout-1"]
        assert sprout.state == "completed"
        assert sprout.result == 4
        assert sprout.harvested_at == "2025-01-15T09:00:00.000Z"
        assert state.soil_capacity == pytest.approx(10.2)
        assert state.soil_available == 10
        assert 0 <= state.soil_available <= state.soil_capacity

    def test_out_of_order_log(self, ev):
        state = derive_state(
            [
                ev.harvested("2025-01-15T09:00:00.000Z", result=3),
                ev.planted("2025-01-01T09:00:00.000Z"),
                ev.watered("2025-01-08T09:00:00.000Z"),
            ]
        )
        sprout = state.sprouts["sprout-1"]
        assert sprout.state == "completed"
        assert len(sprout.water_entries) == 1
        assert sprout.result == 3

    def test_uproot_returns_refund(self, ev):
        state = derive_state(
            [
                ev.planted("2025-01-01T09:00:00.000Z", soil_cost=4, environment="barren"),
                ev.uprooted("2025-01-02T09:00:00.000Z", soil_returned=1.0),
            ]
        )
        assert state.sprouts["sprout-1"].state == "uprooted"
        assert state.sprouts["sprout-1"].uprooted_at == "2025-01-02T09:00:00.000Z"
        assert state.soil_available == 7
        assert state.active_sprouts_by_twig == {}

    def test_replant_overwrites(self, ev):
        state = derive_state(
            [
                ev.planted("2025-01-01T09:00:00.000Z", title="A", soil_cost=2),
                ev.planted("2025-01-02T09:00:00.000Z", title="B", soil_cost=3, environment="firm"),
            ]
        )
        assert state.sprouts["sprout-1"].title == "B"
        assert state.sprouts["sprout-1"].environment == "firm"
        assert state.soil_available == 7
        assert len(state.sprouts_by_twig[TWIG]) == 1

    def test_terminal_states_do_not_transition(self, ev):
        state = derive_state(
            [
                ev.planted("2025-01-01T09:00:00.000Z"),
                ev.harvested("2025-01-15T09:00:00.000Z", capacity_gained=0.2),
                ev.uprooted("2025-01-16T09:00:00.000Z"),
                ev.harvested("2025-01-17T09:00:00.000Z", result=1, capacity_gained=0.5),
            ]
        )
        sprout = state.sprouts["sprout-1"]
        assert sprout.state == "completed"
        assert sprout.result == 4
        assert sprout.uprooted_at is None
        assert state.soil_capacity == pytest.approx(10.2)

    def test_water_after_harvest_is_recorded_without_soil(self, ev):
        state = derive_state(
            [
                ev.planted("2025-01-01T09:00:00.000Z"),
                ev.harvested("2025-01-15T09:00:00.000Z", capacity_gained=0),
                ev.watered("2025-01-16T09:00:00.000Z"),
            ]
        )
        assert len(state.sprouts["sprout-1"].water_entries) == 1
        assert state.soil_available == 10


class TestOrphansAndInvalid:
    def test_orphan_events_are_skipped(self, ev):
        state = derive_state(
            [
                ev.watered("2025-01-02T09:00:00.000Z", sprout_id="ghost"),
                ev.harvested("2025-01-03T09:00:00.000Z", sprout_id="ghost", capacity_gained=5),
                ev.uprooted("2025-01-04T09:00:00.000Z", sprout_id="ghost", soil_returned=3),
            ]
        )
        assert state == derive_state([])

    def test_harvest_before_plant_is_applied_after_sorting(self, ev):
        # Reversed log order; timestamps decide
        events = [
            ev.harvested("2025-01-15T09:00:00.000Z", capacity_gained=0.2),
            ev.planted("2025-01-01T09:00:00.000Z"),
        ]
        assert derive_state(events).sprouts["sprout-1"].state == "completed"

    def test_unknown_twig_is_skipped(self, ev):
        state = derive_state(
            [
                ev.planted("2025-01-01T09:00:00.000Z", twig_id="branch-9-twig-0"),
                ev.leaf("2025-01-01T10:00:00.000Z", twig_id="trunk"),
                ev.shone("2025-01-01T11:00:00.000Z", twig_id="branch-0-twig-8"),
            ]
        )
        assert state.sprouts == {}
        assert state.leaves == {}
        assert state.sun_entries == []
        assert state.soil_available == 10


class TestClamp:
    def test_available_never_negative(self, ev):
        state = derive_state(
            [
                ev.planted("2025-01-01T09:00:00.000Z", sprout_id="a", soil_cost=8),
                ev.planted("2025-01-02T09:00:00.000Z", sprout_id="b", soil_cost=8),
            ]
        )
        assert state.soil_available == 0

    def test_available_never_exceeds_capacity(self, ev):
        events = [ev.shone(f"2025-01-{day:02d}T09:00:00.000Z") for day in range(1, 20)]
        state = derive_state(events)
        assert state.soil_available == state.soil_capacity == 10

    def test_clamped_throughout_history(self, ev):
        events = _history(ev)
        for end in range(len(events) + 1):
            state = derive_state(events[:end])
            assert 0 <= state.soil_available <= state.soil_capacity


class TestDeterminism:
    def test_permutations_give_equal_snapshots(self, ev):
        events = _history(ev)
        expected = derive_state(events)
        rng = random.Random(7)
        for _ in range(20):
            shuffled = list(events)
            rng.shuffle(shuffled)
            assert derive_state(shuffled) == expected

    def test_resend_is_idempotent(self, ev):
        events = _history(ev)
        assert derive_state(events + events) == derive_state(events)

    def test_resend_with_client_ids(self, ev):
        events = [
            ev.planted("2025-01-01T09:00:00.000Z", client_id="p"),
            ev.watered("2025-01-02T09:00:00.000Z", client_id="w"),
        ]
        assert derive_state(events + [events[1]]) == derive_state(events)

    def test_fresh_snapshot_each_call(self, ev):
        events = _history(ev)
        first = derive_state(events)
        first.sprouts["sprout-1"].title = "mutated"
        assert derive_state(events).sprouts["sprout-1"].title == "Run 5k"

    def test_now_cuts_off_later_events(self, ev):
        events = _history(ev)
        state = derive_state(events, now=datetime(2025, 1, 10, tzinfo=UTC))
        assert state.sprouts["sprout-1"].state == "active"
        assert state.sprouts["sprout-2"].state == "active"


class TestQueries:
    def test_indexes(self, ev):
        state = derive_state(_history(ev))
        assert [s.id for s in get_sprouts_for_twig(state, TWIG)] == ["sprout-1"]
        assert get_sprouts_for_twig(state, "branch-5-twig-5") == []
        assert [leaf.id for leaf in get_leaves_for_twig(state, TWIG)] == ["leaf-1"]
        assert get_leaf(state, "leaf-1").name == "Marathon"
        assert get_leaf(state, "nope") is None
        assert [s.id for s in get_sprouts_for_leaf(state, "leaf-1")] == ["sprout-1"]

    def test_active_and_completed(self, ev):
        events = _history(ev)
        state = derive_state(events[:-2])
        assert {s.id for s in get_active_sprouts(state)} == {"sprout-1", "sprout-2"}
        state = derive_state(events)
        assert get_active_sprouts(state) == []
        assert [s.id for s in get_completed_sprouts(state)] == ["sprout-1"]

    def test_water_entries_newest_first(self, ev):
        entries = get_all_water_entries(derive_state(_history(ev)))
        assert [e["sprout_id"] for e in entries] == ["sprout-2", "sprout-1"]
        assert entries[0]["sprout_title"] == "Fix bike"

    def test_count_by_branch(self, ev):
        events = _history(ev)
        counts = count_sprouts_by_branch(derive_state(events[:-1]))
        assert counts == {0: {"active": 0, "total": 1}, 3: {"active": 1, "total": 1}}

    def test_duplicate_leaf_keeps_first(self, ev):
        state = derive_state(
            [
                ev.leaf("2025-01-01T08:00:00.000Z", name="First"),
                ev.leaf("2025-01-02T08:00:00.000Z", name="Second"),
            ]
        )
        assert state.leaves["leaf-1"].name == "First"


class TestWaterAndSun:
    def test_water_availability(self, ev):
        now = datetime(2025, 1, 13, 20, tzinfo=UTC)
        events = [
            ev.planted("2025-01-13T07:00:00.000Z"),
            ev.watered("2025-01-13T08:00:00.000Z", content="a"),
            ev.watered("2025-01-13T09:00:00.000Z", content="b"),
            ev.watered("2025-01-12T09:00:00.000Z", content="yesterday"),
        ]
        assert derive_water_available(events, now, UTC) == 1
        events.append(ev.watered("2025-01-13T10:00:00.000Z", content="c"))
        events.append(ev.watered("2025-01-13T11:00:00.000Z", content="d"))
        assert derive_water_available(events, now, UTC) == 0

    def test_duplicate_waterings_count_once(self, ev):
        now = datetime(2025, 1, 13, 20, tzinfo=UTC)
        water = ev.watered("2025-01-13T08:00:00.000Z", client_id="w-1")
        assert derive_water_available([water, water, water], now, UTC) == 2

    def test_sun_on_unknown_twig_does_not_count(self, ev):
        now = datetime(2025, 1, 14, tzinfo=UTC)
        events = [ev.shone("2025-01-13T08:00:00.000Z", twig_id="branch-9-twig-9")]
        assert derive_sun_available(events, now, UTC) == 1
        assert not was_shone_this_week(events, now, UTC)

    def test_sun_spent(self, ev):
        now = datetime(2025, 1, 14, tzinfo=UTC)
        events = [ev.shone("2025-01-13T08:00:00.000Z")]
        assert derive_sun_available(events, now, UTC) == 0
        assert was_shone_this_week(events, now, UTC)

    def test_watered_today_and_week(self, ev):
        events = [ev.planted("2025-01-13T07:00:00.000Z"), ev.watered("2025-01-13T08:00:00.000Z")]
        today = datetime(2025, 1, 13, 20, tzinfo=UTC)
        tomorrow = datetime(2025, 1, 14, 20, tzinfo=UTC)
        assert was_sprout_watered_today(events, "sprout-1", today, UTC)
        assert not was_sprout_watered_today(events, "sprout-1", tomorrow, UTC)
        assert was_sprout_watered_this_week(events, "sprout-1", tomorrow, UTC)
        assert not was_sprout_watered_today(events, "sprout-2", today, UTC)
