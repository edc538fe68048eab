"""Lock Mode slot definitions and leg drivers.

A slip has a fixed set of named slots, each with an acceptance predicate
and a unique priority rank (1 = filled first). Default slots:

- BIG_REB_OVER (1): rebounds OVER from a big/primary, or a subject already
  rebounding well, or a high-minute subject with a solid edge
- ASSIST_OVER (2): assists OVER from a primary/secondary handler, or a
  subject already distributing
- FLEX (3): points/PRA OVERs, fatigue-backed UNDERs, and rebound/assist
  OVERs whose edge is unusually large
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .config import LockModeConfig
from .gates import fatigue_score, minutes_played
from .models import Candidate, LiveState

SlotPredicate = Callable[[Candidate, Optional[LiveState], LockModeConfig], bool]

# Live role assumed when tracking has none
DEFAULT_LIVE_ROLE = "SECONDARY"


@dataclass(frozen=True)
class Slot:
    """A named, ranked position in the slip."""
    name: str
    priority_rank: int
    display_name: str
    predicate: SlotPredicate

    def accepts(
        self,
        candidate: Candidate,
        live_state: Optional[LiveState],
        config: LockModeConfig,
    ) -> bool:
        return bool(self.predicate(candidate, live_state, config))


class SlotTable:
    """Ordered, validated set of slots.

    Raises ValueError at construction if slot names or ranks repeat.
    """

    def __init__(self, slots: Iterable[Slot]):
        slots = list(slots)
        if not slots:
            raise ValueError("SlotTable requires at least one slot")

        names = [s.name for s in slots]
        ranks = [s.priority_rank for s in slots]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate slot names: {names}")
        if len(set(ranks)) != len(ranks):
            raise ValueError(f"Duplicate slot priority ranks: {ranks}")

        self._slots = tuple(sorted(slots, key=lambda s: s.priority_rank))

    def __iter__(self):
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self._slots]

    def get(self, name: str) -> Slot:
        for s in self._slots:
            if s.name == name:
                return s
        raise KeyError(name)

    def matching(
        self,
        candidate: Candidate,
        live_state: Optional[LiveState],
        config: LockModeConfig,
    ) -> list[Slot]:
        """Slots the candidate could fill, in priority order."""
        return [s for s in self._slots if s.accepts(candidate, live_state, config)]


# =============================================================================
# DEFAULT SLOT PREDICATES
# =============================================================================

def _live_role(live_state: Optional[LiveState]) -> str:
    if live_state is not None and live_state.role:
        return live_state.role
    return DEFAULT_LIVE_ROLE


def _is_over(candidate: Candidate, category: str) -> bool:
    return candidate.stat_category == category and candidate.direction == "OVER"


def accepts_big_rebound_over(
    candidate: Candidate, live_state: Optional[LiveState], config: LockModeConfig
) -> bool:
    if not _is_over(candidate, "REBOUNDS"):
        return False
    if _live_role(live_state) in ("BIG", "PRIMARY"):
        return True
    if (candidate.current_stat or 0) >= config.reb_min_current_stat:
        return True
    return (
        minutes_played(candidate, live_state) >= config.reb_min_minutes
        and candidate.edge >= config.reb_min_edge
    )


def accepts_assist_over(
    candidate: Candidate, live_state: Optional[LiveState], config: LockModeConfig
) -> bool:
    if not _is_over(candidate, "ASSISTS"):
        return False
    if _live_role(live_state) in ("PRIMARY", "SECONDARY"):
        return True
    return (candidate.current_stat or 0) >= config.assist_min_current_stat


def accepts_flex(
    candidate: Candidate, live_state: Optional[LiveState], config: LockModeConfig
) -> bool:
    if _is_over(candidate, "POINTS"):
        return minutes_played(candidate, live_state) >= config.min_first_half_minutes
    if _is_over(candidate, "PRA"):
        return True
    if candidate.direction == "UNDER":
        return fatigue_score(live_state) >= config.min_fatigue_for_under
    if _is_over(candidate, "REBOUNDS"):
        return candidate.edge >= config.flex_reb_min_edge
    if _is_over(candidate, "ASSISTS"):
        return candidate.edge >= config.flex_assist_min_edge
    return False


DEFAULT_SLOTS = (
    Slot("BIG_REB_OVER", 1, "Rebound Over", accepts_big_rebound_over),
    Slot("ASSIST_OVER", 2, "Assist Over", accepts_assist_over),
    Slot("FLEX", 3, "Flex Pick", accepts_flex),
)


def default_slot_table() -> SlotTable:
    return SlotTable(DEFAULT_SLOTS)


# =============================================================================
# DRIVERS
# =============================================================================

ROLE_DRIVERS = {
    "STARTER": "Stable closer minutes",
    "CLOSER": "Stable closer minutes",
    "PRIMARY": "Primary option",
    "BIG": "Strong box-outs",
}

CATEGORY_DRIVERS = {
    "REBOUNDS": "Elite positioning",
    "ASSISTS": "Primary playmaker",
    "POINTS": "Star floor active",
}


def build_drivers(
    candidate: Candidate,
    live_state: Optional[LiveState],
    config: LockModeConfig,
) -> list[str]:
    """Human-readable reasons for selecting a leg.

    Order is fixed: role driver, category driver, UNDER fatigue driver;
    truncated to config.max_drivers.
    """
    drivers = []

    role = live_state.role if live_state is not None and live_state.role else candidate.rotation_role
    if role in ROLE_DRIVERS:
        drivers.append(ROLE_DRIVERS[role])

    if candidate.stat_category in CATEGORY_DRIVERS:
        drivers.append(CATEGORY_DRIVERS[candidate.stat_category])

    fatigue = fatigue_score(live_state)
    if candidate.direction == "UNDER" and fatigue >= config.fatigue_driver_threshold:
        drivers.append(f"Fatigue spike: {fatigue:g}%")

    return drivers[:config.max_drivers]
