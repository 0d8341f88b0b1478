"""Option tally: pure vote counting, percentages and leader detection.

Percentages are rounded half-up per option and never renormalised, so three
options at one vote each read 33/33/33. Callers must not assume they sum to
100.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from decisions.engine.records import Option, Response


@dataclass(frozen=True)
class TalliedOption:
    """An option annotated with its derived vote count and percentage."""

    option: Option
    vote_count: int
    percentage: int

    @property
    def option_id(self) -> str:
        return self.option.option_id


@dataclass(frozen=True)
class AxisSummary:
    total_votes: int
    leader_option_id: Optional[str]
    has_tie: bool


def percentage_of(count: int, total: int) -> int:
    """Integer percentage of ``count`` in ``total``, rounded half-up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (count * 200 + total) // (2 * total)


def tally(options: Sequence[Option], responses: Iterable[Response]) -> list[TalliedOption]:
    """Count vote responses per option, preserving the order of ``options``.

    Votes pointing at options outside ``options`` are ignored, which is what
    lets the per-kind grouping below reuse this function.
    """
    option_ids = {opt.option_id for opt in options}
    counts = Counter(
        resp.option_id for resp in responses
        if resp.option_id is not None and resp.option_id in option_ids
    )
    total = sum(counts.values())
    return [
        TalliedOption(
            option=opt,
            vote_count=counts.get(opt.option_id, 0),
            percentage=percentage_of(counts.get(opt.option_id, 0), total),
        )
        for opt in options
    ]


def leaders(tallied: Sequence[TalliedOption]) -> list[TalliedOption]:
    """Every option holding the maximum nonzero count (empty when nobody voted)."""
    if not tallied:
        return []
    top = max(t.vote_count for t in tallied)
    if top == 0:
        return []
    return [t for t in tallied if t.vote_count == top]


def leader(tallied: Sequence[TalliedOption]) -> Optional[TalliedOption]:
    """The single leading option, or ``None`` on zero votes or a tie for first."""
    top = leaders(tallied)
    if len(top) != 1:
        return None
    return top[0]


def has_tie(tallied: Sequence[TalliedOption]) -> bool:
    return len(leaders(tallied)) > 1


def summarize(tallied: Sequence[TalliedOption]) -> AxisSummary:
    winner = leader(tallied)
    return AxisSummary(
        total_votes=sum(t.vote_count for t in tallied),
        leader_option_id=winner.option_id if winner else None,
        has_tie=has_tie(tallied),
    )


def tally_by_kind(
    options: Sequence[Option],
    responses: Iterable[Response],
) -> dict[str, list[TalliedOption]]:
    """Tally each option-kind group of an event independently.

    Keys are option kinds in first-seen order; each group's percentages are
    relative to the votes cast on that group only.
    """
    responses = list(responses)
    groups: dict[str, list] = {}
    for opt in options:
        groups.setdefault(opt.axis, []).append(opt)
    return {kind: tally(group, responses) for kind, group in groups.items()}

