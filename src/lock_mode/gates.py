"""Lock Mode qualification gates.

Each candidate is checked against five independent gates. A candidate is
eligible iff all five pass; order does not matter and every gate is always
evaluated so that all failure reasons are available for tuning.

Gates:
1. PARTICIPATION - privileged rotation role, stable rotation, no foul trouble,
   enough minutes played
2. CATEGORY - stat category in one of three allowed tiers
3. EDGE_UNCERTAINTY - |projected - line| >= uncertainty * multiplier AND > floor
4. DIRECTIONAL - UNDERs only: fatigue, low variance ratio, no adverse flags
5. CONFIDENCE - calibrated confidence above floor, no disqualifying flags

Gate functions are pure. Callers that want per-candidate diagnostics pass
an observer callback to evaluate_candidate / evaluate_candidates.
"""

from typing import Callable, Iterable, Optional

from .config import LockModeConfig
from .models import Candidate, GateEvaluation, GateResult, LiveState

GATE_PARTICIPATION = "participation"
GATE_CATEGORY = "category"
GATE_EDGE_UNCERTAINTY = "edge_uncertainty"
GATE_DIRECTIONAL = "directional"
GATE_CONFIDENCE = "confidence"

GATE_ORDER = (
    GATE_PARTICIPATION,
    GATE_CATEGORY,
    GATE_EDGE_UNCERTAINTY,
    GATE_DIRECTIONAL,
    GATE_CONFIDENCE,
)

# Allowed stat categories -> tier. Anything else is a hard block.
STAT_TIERS = {
    "REBOUNDS": "TIER_1",
    "ASSISTS": "TIER_1",
    "PRA": "TIER_2",
    "POINTS": "TIER_3",
}

GateObserver = Callable[[GateEvaluation], None]


def minutes_played(candidate: Candidate, live_state: Optional[LiveState]) -> float:
    """Minutes from the candidate, else the live estimate, else 0."""
    if candidate.minutes_played is not None:
        return float(candidate.minutes_played)
    if live_state is not None and live_state.minutes_estimate is not None:
        return float(live_state.minutes_estimate)
    return 0.0


def fatigue_score(live_state: Optional[LiveState]) -> float:
    return live_state.fatigue_score if live_state is not None else 0.0


def stat_tier(stat_category: str) -> Optional[str]:
    """Tier for an allowed category, None for blocked categories."""
    return STAT_TIERS.get(stat_category)


# =============================================================================
# GATES
# =============================================================================

def participation_gate(
    candidate: Candidate,
    live_state: Optional[LiveState],
    config: LockModeConfig,
) -> GateResult:
    """Gate 1: role, rotation stability, fouls and minutes all required."""
    role = candidate.rotation_role
    minutes = minutes_played(candidate, live_state)
    fouls = live_state.foul_count if live_state is not None else 0

    is_privileged = role in config.privileged_roles
    if (
        not is_privileged
        and config.high_minute_role_fallback is not None
        and minutes >= config.high_minute_role_fallback
    ):
        is_privileged = True

    if not is_privileged:
        roles = "/".join(sorted(config.privileged_roles))
        reason = f"Not {roles} (role: {role or 'undefined'}, min: {minutes:.0f})"
    elif candidate.rotation_volatile:
        reason = "Minutes volatile"
    elif fouls > config.max_fouls:
        reason = f"Foul trouble ({fouls} fouls)"
    elif minutes < config.min_first_half_minutes:
        reason = f"1H minutes {minutes:.0f} < {config.min_first_half_minutes:g}"
    else:
        return GateResult(GATE_PARTICIPATION, True)

    return GateResult(GATE_PARTICIPATION, False, reason)


def category_gate(candidate: Candidate) -> GateResult:
    """Gate 2: category must be tier 1, 2 or 3."""
    if stat_tier(candidate.stat_category) is None:
        return GateResult(
            GATE_CATEGORY, False, f"{candidate.stat_category} not allowed in Lock Mode"
        )
    return GateResult(GATE_CATEGORY, True)


def edge_uncertainty_gate(candidate: Candidate, config: LockModeConfig) -> GateResult:
    """Gate 3: edge must clear both the scaled uncertainty and the absolute floor."""
    edge = candidate.edge
    threshold = candidate.uncertainty * config.edge_uncertainty_multiplier

    if edge < threshold:
        return GateResult(
            GATE_EDGE_UNCERTAINTY,
            False,
            f"Edge {edge:.1f} < {threshold:.1f} "
            f"(unc x {config.edge_uncertainty_multiplier:g})",
        )
    if edge <= config.min_absolute_edge:
        return GateResult(
            GATE_EDGE_UNCERTAINTY,
            False,
            f"Edge {edge:.1f} <= floor {config.min_absolute_edge:g}",
        )
    return GateResult(GATE_EDGE_UNCERTAINTY, True)


def directional_gate(
    candidate: Candidate,
    live_state: Optional[LiveState],
    config: LockModeConfig,
) -> GateResult:
    """Gate 4: stricter rules for UNDERs; OVERs pass trivially.

    The variance ratio uses the line as the reference magnitude; a
    non-positive line cannot satisfy it.
    """
    if candidate.direction != "UNDER":
        return GateResult(GATE_DIRECTIONAL, True)

    fatigue = fatigue_score(live_state)
    if fatigue < config.min_fatigue_for_under:
        return GateResult(
            GATE_DIRECTIONAL, False,
            f"Fatigue {fatigue:g} < {config.min_fatigue_for_under:g}",
        )

    if candidate.line <= 0:
        return GateResult(GATE_DIRECTIONAL, False, "Variance too high (non-positive line)")
    variance_ratio = candidate.uncertainty / candidate.line
    if variance_ratio > config.max_variance_ratio:
        return GateResult(
            GATE_DIRECTIONAL, False,
            f"Variance too high ({variance_ratio:.2f} > {config.max_variance_ratio:g})",
        )

    blocking = sorted(candidate.risk_flags & config.under_blocking_flags)
    if blocking:
        return GateResult(GATE_DIRECTIONAL, False, f"Adverse flags: {', '.join(blocking)}")

    return GateResult(GATE_DIRECTIONAL, True)


def confidence_gate(candidate: Candidate, config: LockModeConfig) -> GateResult:
    """Gate 5: calibrated confidence must exceed the floor, no disqualifying flags."""
    confidence = candidate.calibrated_confidence
    if confidence <= config.min_confidence:
        return GateResult(
            GATE_CONFIDENCE, False,
            f"Confidence {confidence:.1f} <= {config.min_confidence:g}",
        )

    blocking = sorted(candidate.risk_flags & config.confidence_blocking_flags)
    if blocking:
        return GateResult(GATE_CONFIDENCE, False, f"Blocked by {', '.join(blocking)}")

    return GateResult(GATE_CONFIDENCE, True)


# =============================================================================
# PIPELINE
# =============================================================================

def evaluate_candidate(
    candidate: Candidate,
    live_state: Optional[LiveState],
    config: LockModeConfig,
    observer: Optional[GateObserver] = None,
) -> GateEvaluation:
    """Run all five gates on one candidate.

    Args:
        candidate: Candidate to evaluate
        live_state: Pre-resolved live state for the candidate's subject
        config: Thresholds
        observer: Optional callback receiving the evaluation

    Returns:
        GateEvaluation with one GateResult per gate (in GATE_ORDER)
    """
    evaluation = GateEvaluation(
        candidate=candidate,
        live_state=live_state,
        results=(
            participation_gate(candidate, live_state, config),
            category_gate(candidate),
            edge_uncertainty_gate(candidate, config),
            directional_gate(candidate, live_state, config),
            confidence_gate(candidate, config),
        ),
    )
    if observer is not None:
        observer(evaluation)
    return evaluation


def evaluate_candidates(
    pairs: Iterable[tuple[Candidate, Optional[LiveState]]],
    config: LockModeConfig,
    observer: Optional[GateObserver] = None,
) -> list[GateEvaluation]:
    """Run the gate pipeline over (candidate, live_state) pairs."""
    return [
        evaluate_candidate(candidate, live_state, config, observer)
        for candidate, live_state in pairs
    ]
