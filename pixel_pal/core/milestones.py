"""Round-number step milestones, celebrated once each on the live surface."""

from typing import Iterator, Optional

MILESTONES = (
    1_000, 2_500, 5_000, 7_500, 10_000, 15_000, 20_000, 25_000,
    50_000, 75_000, 100_000, 150_000, 200_000, 250_000, 500_000, 1_000_000,
)


def check_milestone(previous_steps: int, current_steps: int) -> Optional[int]:
    """
    Return the smallest milestone crossed between two totals, if any.

    Only the first crossed milestone is reported; a large jump that skips
    several of them needs `crossed_milestones` to see the rest.
    """
    for milestone in MILESTONES:
        if previous_steps < milestone <= current_steps:
            return milestone
    return None


def crossed_milestones(previous_steps: int, current_steps: int) -> Iterator[int]:
    """Yield every milestone crossed between two totals, smallest first."""
    milestone = check_milestone(previous_steps, current_steps)
    while milestone is not None:
        yield milestone
        milestone = check_milestone(milestone, current_steps)


def format_milestone(milestone: int) -> str:
    """Short celebration text, e.g. "5k!" or "1M!"."""
    if milestone >= 1_000_000:
        return f"{milestone // 1_000_000}M!"
    if milestone >= 1_000:
        return f"{milestone // 1_000}k!"
    return f"{milestone}!"
