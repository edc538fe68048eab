"""Live line scanner helpers.

Once a slip is built, the live book line may have moved since the
candidate was priced. These helpers score how favorable the current line
is versus the projection and flag lines that look too good to be true.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence


class LineTimingStatus(str, Enum):
    BET_NOW = "BET_NOW"
    WAIT = "WAIT"
    AVOID = "AVOID"


@dataclass(frozen=True)
class LineFit:
    """Line favorability score (0-100) and timing status."""
    score: int
    status: LineTimingStatus


def directional_edge(projection: float, line: float, direction: str) -> float:
    """Edge in the bet's favor (positive = good)."""
    if str(direction).upper() == "OVER":
        return projection - line
    return line - projection


def calculate_line_fit_score(
    projection: float,
    live_line: float,
    direction: str,
    original_line: float,
) -> LineFit:
    """Score the live line against the projection.

    Bands (edge vs live line):
        >= 2.5: BET_NOW (95 if the line moved >= 0.5 our way, else 85)
        >= 1.5: BET_NOW 75, or WAIT 50 if the line moved > 1.0 against us
        >= 0.5: WAIT (65 if the line held or improved, else 55)
        below : AVOID 30
    """
    live_edge = directional_edge(projection, live_line, direction)
    original_edge = directional_edge(projection, original_line, direction)
    favorability = live_edge - original_edge

    if live_edge >= 2.5:
        if favorability >= 0.5:
            return LineFit(95, LineTimingStatus.BET_NOW)
        return LineFit(85, LineTimingStatus.BET_NOW)

    if live_edge >= 1.5:
        if favorability < -1.0:
            return LineFit(50, LineTimingStatus.WAIT)
        return LineFit(75, LineTimingStatus.BET_NOW)

    if live_edge >= 0.5:
        if favorability >= 0:
            return LineFit(65, LineTimingStatus.WAIT)
        return LineFit(55, LineTimingStatus.WAIT)

    return LineFit(30, LineTimingStatus.AVOID)


def detect_trap_line(
    projection: float,
    live_line: float,
    direction: str,
    movement_history: Sequence[float],
    max_edge: float = 5.0,
    max_recent_movement: float = 3.0,
) -> bool:
    """True if the line looks like a trap.

    Either the edge is implausibly large (the book likely knows something)
    or the last three line moves sum to more than max_recent_movement.
    """
    if directional_edge(projection, live_line, direction) > max_edge:
        return True

    recent = list(movement_history)[-3:]
    if len(recent) >= 3 and abs(sum(recent)) > max_recent_movement:
        return True

    return False
