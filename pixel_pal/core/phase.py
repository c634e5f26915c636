"""
Evolution phase calculations.

Evolution is driven purely by cumulative steps since the profile was created
and is permanent: phases never reset or reverse. Free-tier users can earn
Phases 3 and 4 but only access up to Phase 2.

    Phase 1  Dormant     0 - 25,000
    Phase 2  Active      25,001 - 75,000
    Phase 3  Energized   75,001 - 200,000   (premium)
    Phase 4  Ascended    200,001+           (premium)
"""

from typing import Optional

PHASE1_MAX = 25_000
PHASE2_MAX = 75_000
PHASE3_MAX = 200_000

FREE_TIER_MAX_PHASE = 2
FINAL_PHASE = 4

# Phase 4 has no upper bound; its progress ring repeats every 100k steps
PHASE4_RING_SIZE = 100_000

PHASE_NAMES = {
    1: "Dormant",
    2: "Active",
    3: "Energized",
    4: "Ascended",
}

PHASE_DESCRIPTIONS = {
    1: "This is the beginning.",
    2: "Movement is becoming part of you.",
    3: "This is momentum.",
    4: "You've changed.",
}

_BANDS = {
    1: (0, PHASE1_MAX),
    2: (PHASE1_MAX, PHASE2_MAX),
    3: (PHASE2_MAX, PHASE3_MAX),
}


def next_threshold(phase: int) -> int:
    """Return the inclusive upper bound of `phase` (Phase 3's bound for 4)."""
    if phase in _BANDS:
        return _BANDS[phase][1]
    return PHASE3_MAX


def earned_phase(total_steps: int) -> int:
    """Phase implied by cumulative steps alone, ignoring entitlement."""
    if total_steps <= PHASE1_MAX:
        return 1
    if total_steps <= PHASE2_MAX:
        return 2
    if total_steps <= PHASE3_MAX:
        return 3
    return 4


def current_phase(total_steps: int, is_premium: bool) -> int:
    """
    Accessible phase for the given entitlement.

    Non-premium users are capped at Phase 2 however many steps they have.
    """
    earned = earned_phase(total_steps)
    if not is_premium and earned > FREE_TIER_MAX_PHASE:
        return FREE_TIER_MAX_PHASE
    return earned


def progress_in_phase(total_steps: int) -> float:
    """
    Fraction of the earned phase's band already walked.

    Bands include their upper bound, so a total sitting exactly on it (for
    example 25,000 in phase 1) reports 1.0 until the next step moves it into
    the next phase. Phase 4 is unbounded, so its progress is shown toward the
    next 100k.
    """
    earned = earned_phase(total_steps)
    if earned == FINAL_PHASE:
        steps_in_phase = total_steps - PHASE3_MAX
        return (steps_in_phase % PHASE4_RING_SIZE) / PHASE4_RING_SIZE

    lower, upper = _BANDS[earned]
    return max(total_steps - lower, 0) / (upper - lower)


def steps_to_next_phase(total_steps: int) -> Optional[int]:
    """Steps remaining until the next phase, or None in the final phase."""
    earned = earned_phase(total_steps)
    if earned == FINAL_PHASE:
        return None
    return next_threshold(earned) - total_steps + 1


def check_phase_transition(previous_steps: int, current_steps: int) -> Optional[int]:
    """Return the new earned phase if one was just entered, else None."""
    previous = earned_phase(previous_steps)
    current = earned_phase(current_steps)
    if current > previous:
        return current
    return None


def should_show_paywall(total_steps: int, is_premium: bool, has_seen_paywall: bool) -> bool:
    """True once a free user has earned Phase 3+ and not yet seen the paywall."""
    if is_premium or has_seen_paywall:
        return False
    return earned_phase(total_steps) >= 3
