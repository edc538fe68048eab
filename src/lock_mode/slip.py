"""Lock Mode slip builder.

One decision cycle:

    Collecting -> Gate-Evaluating -> Slot-Assigning -> {Valid | Invalid}

Linear, no retries. The slip is valid only if every slot holds a distinct
subject; otherwise it is invalid, carries no legs, and names every empty
slot. An invalid slip is a normal decision (not enough qualified edges),
distinct from a genuine error such as malformed input, which raises.

Assignment is first-fit over a deterministic ordering:
    1. best (lowest) priority rank among slots the candidate matches
    2. calibrated confidence descending
    3. subject_id, then stat_category ascending
Each candidate takes the first empty slot it matches; a subject already
holding a slot is skipped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from .config import LockModeConfig
from .gates import GateObserver, evaluate_candidates
from .models import Candidate, GateEvaluation, GateResult, LiveState
from .slots import SlotTable, build_drivers, default_slot_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlipLeg:
    """A selected candidate in a slot."""

    slot: str
    candidate: Candidate
    edge: float
    calibrated_confidence: float
    drivers: tuple[str, ...]
    gates: tuple[GateResult, ...]

    def to_dict(self) -> dict:
        c = self.candidate
        return {
            "slot": self.slot,
            "subject_id": c.subject_id,
            "stat_category": c.stat_category,
            "line": c.line,
            "direction": c.direction,
            "projected_value": c.projected_value,
            "uncertainty": c.uncertainty,
            "edge": self.edge,
            "calibrated_confidence": self.calibrated_confidence,
            "drivers": list(self.drivers),
        }


@dataclass(frozen=True)
class Slip:
    """Result of one decision cycle.

    Attributes:
        valid: True iff every slot was filled with a distinct subject
        legs: Filled legs in slot-rank order (empty when invalid)
        missing_slots: Unfilled slot names in rank order (empty when valid)
        evaluations: Gate evaluation for every input candidate
        unmatched: Labels of gate-eligible candidates that matched no slot
        generated_at: ISO timestamp
        game_time: Caller-supplied game clock label
        block_reason: Why the slip is invalid
    """

    valid: bool
    legs: tuple[SlipLeg, ...] = ()
    missing_slots: tuple[str, ...] = ()
    evaluations: tuple[GateEvaluation, ...] = ()
    unmatched: tuple[str, ...] = ()
    generated_at: str = ""
    game_time: str = ""
    block_reason: Optional[str] = None

    @property
    def subject_ids(self) -> list[str]:
        return [leg.candidate.subject_id for leg in self.legs]

    @property
    def gate_failures(self) -> dict[str, list[str]]:
        """Candidate label -> failure reasons, for candidates that were blocked."""
        return {
            e.candidate.label: e.failure_reasons
            for e in self.evaluations
            if not e.eligible
        }

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "legs": [leg.to_dict() for leg in self.legs],
            "missing_slots": list(self.missing_slots),
            "block_reason": self.block_reason,
            "generated_at": self.generated_at,
            "game_time": self.game_time,
            "gate_failures": self.gate_failures,
            "unmatched": list(self.unmatched),
        }


def _validate_pairs(
    pairs: Iterable[tuple[Candidate, Optional[LiveState]]],
) -> list[tuple[Candidate, Optional[LiveState]]]:
    validated = []
    for i, pair in enumerate(pairs):
        try:
            candidate, live_state = pair
        except (TypeError, ValueError) as e:
            raise TypeError(f"Item {i} is not a (Candidate, LiveState) pair") from e
        if not isinstance(candidate, Candidate):
            raise TypeError(f"Item {i}: expected Candidate, got {type(candidate).__name__}")
        if live_state is not None and not isinstance(live_state, LiveState):
            raise TypeError(
                f"Item {i}: expected LiveState or None, got {type(live_state).__name__}"
            )
        validated.append((candidate, live_state))
    return validated


def assign_slots(
    eligible: Iterable[GateEvaluation],
    slot_table: SlotTable,
    config: LockModeConfig,
) -> tuple[dict[str, SlipLeg], list[str]]:
    """First-fit assignment of gate-eligible candidates into slots.

    Args:
        eligible: Evaluations that passed every gate
        slot_table: Slots to fill
        config: Thresholds for slot predicates and drivers

    Returns:
        (slot name -> leg for filled slots, labels of candidates matching no slot)
    """
    ranked = []
    unmatched = []
    for evaluation in eligible:
        c, live = evaluation.candidate, evaluation.live_state
        matches = slot_table.matching(c, live, config)
        if not matches:
            unmatched.append(c.label)
            continue
        ranked.append((matches[0].priority_rank, evaluation, matches))

    ranked.sort(key=lambda r: (
        r[0],
        -r[1].candidate.calibrated_confidence,
        r[1].candidate.subject_id,
        r[1].candidate.stat_category,
    ))

    filled: dict[str, SlipLeg] = {}
    used_subjects: set[str] = set()
    for _, evaluation, matches in ranked:
        c, live = evaluation.candidate, evaluation.live_state
        if c.subject_id in used_subjects:
            continue
        for slot in matches:
            if slot.name in filled:
                continue
            filled[slot.name] = SlipLeg(
                slot=slot.name,
                candidate=c,
                edge=c.edge,
                calibrated_confidence=c.calibrated_confidence,
                drivers=tuple(build_drivers(c, live, config)),
                gates=evaluation.results,
            )
            used_subjects.add(c.subject_id)
            break

    return filled, unmatched


def build_lock_mode_slip(
    pairs: Iterable[tuple[Candidate, Optional[LiveState]]],
    config: Optional[LockModeConfig] = None,
    slot_table: Optional[SlotTable] = None,
    game_time: str = "",
    observer: Optional[GateObserver] = None,
    now: Optional[datetime] = None,
) -> Slip:
    """Build a fixed-size slip from live candidates.

    Args:
        pairs: (Candidate, LiveState or None) pairs for this cycle
        config: Thresholds (defaults if None)
        slot_table: Slots to fill (default BIG_REB_OVER / ASSIST_OVER / FLEX)
        game_time: Game clock label recorded on the slip
        observer: Optional per-candidate gate evaluation callback
        now: Timestamp for generated_at (default: current UTC time)

    Returns:
        Slip - valid with one leg per slot, or invalid with missing_slots

    Raises:
        TypeError: If an input item is not a (Candidate, LiveState | None) pair
    """
    config = config or LockModeConfig()
    slot_table = slot_table or default_slot_table()
    generated_at = (now or datetime.now(timezone.utc)).isoformat()

    pairs = _validate_pairs(pairs)
    evaluations = evaluate_candidates(pairs, config, observer)
    eligible = [e for e in evaluations if e.eligible]

    filled, unmatched = assign_slots(eligible, slot_table, config)
    missing = [name for name in slot_table.names if name not in filled]

    logger.info(
        f"Lock Mode: {len(evaluations)} candidates, {len(eligible)} passed all gates, "
        f"{len(filled)}/{len(slot_table)} slots filled"
    )
    for name in slot_table.names:
        leg = filled.get(name)
        logger.debug(f"  {name}: {leg.candidate.label if leg else 'EMPTY'}")

    if missing:
        block_reason = f"Missing {len(missing)} slot(s)"
        logger.info(f"Lock Mode slip invalid: {block_reason} ({', '.join(missing)})")
        return Slip(
            valid=False,
            legs=(),
            missing_slots=tuple(missing),
            evaluations=tuple(evaluations),
            unmatched=tuple(unmatched),
            generated_at=generated_at,
            game_time=game_time,
            block_reason=block_reason,
        )

    return Slip(
        valid=True,
        legs=tuple(filled[name] for name in slot_table.names),
        missing_slots=(),
        evaluations=tuple(evaluations),
        unmatched=tuple(unmatched),
        generated_at=generated_at,
        game_time=game_time,
    )
