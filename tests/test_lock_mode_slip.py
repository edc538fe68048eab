"""Tests for Lock Mode slot assignment and slip construction.

Tests verify:
1. A full slip when every slot has a matching eligible candidate
2. Fail-closed behavior when any slot is empty
3. No subject appears in two legs
4. Deterministic, priority-ordered assignment
5. Input validation and slot table validation
"""

import json
import random
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from src.lock_mode.config import LockModeConfig
from src.lock_mode.models import Candidate, LiveState
from src.lock_mode.slip import build_lock_mode_slip
from src.lock_mode.slots import (
    DEFAULT_SLOTS,
    Slot,
    SlotTable,
    accepts_flex,
    build_drivers,
    default_slot_table,
)


def make_candidate(subject_id, stat_category, line, projected, **kwargs):
    defaults = dict(
        direction="OVER",
        uncertainty=2.0,
        calibrated_confidence=65.0,
        rotation_role="STARTER",
        minutes_played=12.0,
    )
    defaults.update(kwargs)
    return Candidate(
        subject_id=subject_id,
        stat_category=stat_category,
        line=line,
        projected_value=projected,
        **defaults,
    )


@pytest.fixture
def rebound_pair():
    return (
        make_candidate("big", "REBOUNDS", 8.0, 12.0),
        LiveState(role="BIG", fatigue_score=20.0, foul_count=1),
    )


@pytest.fixture
def assist_pair():
    return (
        make_candidate("guard", "ASSISTS", 6.0, 9.0),
        LiveState(role="PRIMARY", fatigue_score=15.0),
    )


@pytest.fixture
def points_pair():
    return (
        make_candidate("wing", "POINTS", 20.0, 25.0, uncertainty=3.0),
        LiveState(role="WING", fatigue_score=10.0),
    )


@pytest.fixture
def full_cycle(rebound_pair, assist_pair, points_pair):
    return [rebound_pair, assist_pair, points_pair]


class TestSlotTable:
    """Tests for slot table validation."""

    def test_default_order(self):
        assert default_slot_table().names == ["BIG_REB_OVER", "ASSIST_OVER", "FLEX"]

    def test_sorted_by_rank(self):
        table = SlotTable(reversed(DEFAULT_SLOTS))
        assert table.names == ["BIG_REB_OVER", "ASSIST_OVER", "FLEX"]

    def test_duplicate_rank_raises(self):
        slots = [DEFAULT_SLOTS[0], Slot("OTHER", 1, "Other", accepts_flex)]
        with pytest.raises(ValueError, match="Duplicate slot priority ranks"):
            SlotTable(slots)

    def test_duplicate_name_raises(self):
        slots = [DEFAULT_SLOTS[0], Slot("BIG_REB_OVER", 5, "Again", accepts_flex)]
        with pytest.raises(ValueError, match="Duplicate slot names"):
            SlotTable(slots)

    def test_empty_raises(self):
        with pytest.raises(ValueError, match="at least one slot"):
            SlotTable([])

    def test_get(self):
        assert default_slot_table().get("FLEX").priority_rank == 3
        with pytest.raises(KeyError):
            default_slot_table().get("MISSING")


class TestSlotPredicates:
    """Tests for default slot acceptance."""

    def test_rebound_slot_by_role(self, rebound_pair):
        c, live = rebound_pair
        names = [s.name for s in default_slot_table().matching(c, live, LockModeConfig())]
        assert names == ["BIG_REB_OVER", "FLEX"]

    def test_rebound_slot_by_current_stat(self):
        c = make_candidate("w", "REBOUNDS", 6.0, 7.0, current_stat=3.0, uncertainty=0.5)
        table = default_slot_table()
        assert table.get("BIG_REB_OVER").accepts(c, LiveState(role="WING"), LockModeConfig())
        assert not table.get("FLEX").accepts(c, LiveState(role="WING"), LockModeConfig())

    def test_assist_slot_defaults_to_secondary_role(self):
        c = make_candidate("g", "ASSISTS", 4.0, 5.0, uncertainty=0.5)
        assert default_slot_table().get("ASSIST_OVER").accepts(c, None, LockModeConfig())

    def test_assist_slot_rejects_big_without_production(self):
        c = make_candidate("b", "ASSISTS", 4.0, 5.0, uncertainty=0.5)
        slot = default_slot_table().get("ASSIST_OVER")
        assert not slot.accepts(c, LiveState(role="BIG"), LockModeConfig())
        assert slot.accepts(replace(c, current_stat=2.0), LiveState(role="BIG"), LockModeConfig())

    def test_flex_accepts_fatigued_under(self):
        c = make_candidate("u", "POINTS", 18.0, 14.0, direction="UNDER")
        config = LockModeConfig()
        assert accepts_flex(c, LiveState(fatigue_score=60.0), config)
        assert not accepts_flex(c, LiveState(fatigue_score=20.0), config)

    def test_under_never_fills_over_slots(self):
        c = make_candidate("u", "REBOUNDS", 10.0, 6.0, direction="UNDER")
        live = LiveState(role="BIG", fatigue_score=60.0)
        names = [s.name for s in default_slot_table().matching(c, live, LockModeConfig())]
        assert names == ["FLEX"]


class TestBuildSlip:
    """Tests for build_lock_mode_slip."""

    def test_full_slip(self, full_cycle):
        slip = build_lock_mode_slip(full_cycle)
        assert slip.valid
        assert [leg.slot for leg in slip.legs] == ["BIG_REB_OVER", "ASSIST_OVER", "FLEX"]
        assert slip.subject_ids == ["big", "guard", "wing"]
        assert len(set(slip.subject_ids)) == 3
        assert slip.missing_slots == ()
        assert slip.block_reason is None

    def test_one_slot_missing(self, rebound_pair, points_pair):
        slip = build_lock_mode_slip([rebound_pair, points_pair])
        assert not slip.valid
        assert slip.missing_slots == ("ASSIST_OVER",)
        assert slip.legs == ()
        assert slip.block_reason == "Missing 1 slot(s)"

    def test_empty_input(self):
        slip = build_lock_mode_slip([])
        assert not slip.valid
        assert slip.missing_slots == ("BIG_REB_OVER", "ASSIST_OVER", "FLEX")
        assert slip.block_reason == "Missing 3 slot(s)"

    def test_ineligible_candidate_never_selected(self, full_cycle):
        (reb, live), *rest = full_cycle
        blocked = replace(reb, calibrated_confidence=50.0)
        slip = build_lock_mode_slip([(blocked, live)] + rest)
        assert not slip.valid
        assert "BIG_REB_OVER" in slip.missing_slots
        assert slip.gate_failures[blocked.label] == ["confidence: Confidence 50.0 <= 55"]

    def test_subject_used_once(self, rebound_pair, points_pair):
        """The rebounder's assist prop cannot take a second slot."""
        _, live = rebound_pair
        same_subject_assist = make_candidate("big", "ASSISTS", 3.0, 6.0, current_stat=3.0)
        slip = build_lock_mode_slip(
            [rebound_pair, (same_subject_assist, live), points_pair]
        )
        assert not slip.valid
        assert slip.missing_slots == ("ASSIST_OVER",)

    def test_fall_through_to_flex(self, rebound_pair, assist_pair):
        reb, live = rebound_pair
        second = replace(reb, subject_id="big2", calibrated_confidence=60.0)
        slip = build_lock_mode_slip([(second, live), rebound_pair, assist_pair])
        assert slip.valid
        legs = {leg.slot: leg.candidate.subject_id for leg in slip.legs}
        assert legs == {"BIG_REB_OVER": "big", "ASSIST_OVER": "guard", "FLEX": "big2"}

    def test_higher_confidence_wins_slot(self, full_cycle):
        guard, guard_live = full_cycle[1]
        better = replace(guard, subject_id="guard2", calibrated_confidence=80.0)
        slip = build_lock_mode_slip(full_cycle + [(better, guard_live)])
        legs = {leg.slot: leg.candidate.subject_id for leg in slip.legs}
        assert legs["ASSIST_OVER"] == "guard2"

    def test_order_independent(self, full_cycle):
        extra = make_candidate("guard2", "ASSISTS", 5.0, 8.0, calibrated_confidence=65.0)
        pairs = full_cycle + [(extra, None)]
        expected = build_lock_mode_slip(pairs).subject_ids
        shuffled = list(pairs)
        random.Random(3).shuffle(shuffled)
        assert build_lock_mode_slip(shuffled).subject_ids == expected
        assert build_lock_mode_slip(list(reversed(pairs))).subject_ids == expected

    def test_eligible_without_slot_reported(self, full_cycle):
        orphan = make_candidate("c", "ASSISTS", 4.0, 5.0, uncertainty=0.5)
        slip = build_lock_mode_slip(full_cycle + [(orphan, LiveState(role="BIG"))])
        assert slip.valid
        assert slip.unmatched == (orphan.label,)

    def test_custom_slot_table(self, points_pair):
        table = SlotTable([Slot("FLEX", 1, "Flex Pick", accepts_flex)])
        slip = build_lock_mode_slip([points_pair], slot_table=table)
        assert slip.valid
        assert slip.subject_ids == ["wing"]

    def test_config_changes_outcome(self, full_cycle):
        strict = LockModeConfig(min_confidence=70.0)
        assert not build_lock_mode_slip(full_cycle, strict).valid
        assert build_lock_mode_slip(full_cycle, LockModeConfig()).valid

    def test_metadata(self, full_cycle):
        now = datetime(2026, 3, 1, 19, 30, tzinfo=timezone.utc)
        slip = build_lock_mode_slip(full_cycle, game_time="Q2 04:12", now=now)
        assert slip.generated_at == now.isoformat()
        assert slip.game_time == "Q2 04:12"
        assert len(slip.evaluations) == 3

    def test_to_dict_is_json_serializable(self, full_cycle):
        data = json.loads(json.dumps(build_lock_mode_slip(full_cycle).to_dict()))
        assert data["valid"] is True
        assert [leg["slot"] for leg in data["legs"]] == ["BIG_REB_OVER", "ASSIST_OVER", "FLEX"]
        assert data["legs"][0]["edge"] == 4.0

    def test_observer_sees_every_candidate(self, full_cycle):
        seen = []
        build_lock_mode_slip(full_cycle, observer=seen.append)
        assert len(seen) == 3


class TestInputValidation:
    """Malformed input raises instead of producing a slip."""

    def test_bare_candidate_raises(self, rebound_pair):
        with pytest.raises(TypeError, match="not a \\(Candidate, LiveState\\) pair"):
            build_lock_mode_slip([rebound_pair[0]])

    def test_wrong_candidate_type_raises(self):
        with pytest.raises(TypeError, match="expected Candidate"):
            build_lock_mode_slip([({"subject_id": "x"}, None)])

    def test_wrong_live_state_type_raises(self, rebound_pair):
        with pytest.raises(TypeError, match="expected LiveState or None"):
            build_lock_mode_slip([(rebound_pair[0], {"role": "BIG"})])


class TestDrivers:
    """Tests for leg driver text."""

    def test_big_rebounder(self, rebound_pair):
        c, live = rebound_pair
        assert build_drivers(c, live, LockModeConfig()) == ["Strong box-outs", "Elite positioning"]

    def test_rotation_role_when_no_live_role(self):
        c = make_candidate("s", "POINTS", 20.0, 25.0)
        assert build_drivers(c, None, LockModeConfig()) == [
            "Stable closer minutes",
            "Star floor active",
        ]

    def test_fatigue_driver(self):
        c = make_candidate("u", "POINTS", 18.0, 14.0, direction="UNDER")
        live = LiveState(fatigue_score=70.0)
        drivers = build_drivers(c, live, LockModeConfig(max_drivers=3))
        assert drivers == ["Stable closer minutes", "Star floor active", "Fatigue spike: 70%"]
        assert len(build_drivers(c, live, LockModeConfig())) == 2

    def test_legs_carry_drivers(self, full_cycle):
        slip = build_lock_mode_slip(full_cycle)
        assert slip.legs[0].drivers == ("Strong box-outs", "Elite positioning")
        assert all(len(leg.drivers) <= 2 for leg in slip.legs)
