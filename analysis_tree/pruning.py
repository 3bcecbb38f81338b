"""Player-aware pruning and expected-winrate aggregation.

The external search scheduler asks ``should_stop_analyzing`` before it
expands a candidate node. Pruning is asymmetric: a line is dropped once
the studied player's own position has become lost, but never because
the opponent blundered.

The aggregation helpers summarize a finished expansion: each expanded
line carries the cumulative human-model probability of reaching it and,
once evaluated, a leaf winrate.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Coverage needed for each confidence bucket
_CONFIDENCE_HIGH = 0.8
_CONFIDENCE_MEDIUM = 0.5


def should_stop_analyzing(
    is_analyzing_players_turn: bool,
    winrate: float,
    min_winrate: float,
) -> bool:
    """Decide whether to stop deepening a candidate line.

    Args:
        is_analyzing_players_turn: True when the studied player is to move.
        winrate: Studied player's win probability in the candidate position.
        min_winrate: Floor below which the line is no longer worth expanding.

    Returns:
        True only when it is the studied player's turn and ``winrate`` is
        strictly below ``min_winrate``.
    """
    return is_analyzing_players_turn and winrate < min_winrate


@dataclass(frozen=True)
class LineLeaf:
    """Evaluation at the end of an expanded line."""

    winrate: float
    depth: int


@dataclass
class ExpectedWinrateNode:
    """One expanded line of a human-likely move tree."""

    fen: str
    path: list[str]
    cumulative_prob: float
    turn: str
    pruned: bool = False
    leaf: LineLeaf | None = None
    children: list[ExpectedWinrateNode] = field(default_factory=list)


@dataclass(frozen=True)
class ExpectedWinrateSummary:
    coverage: float
    expected: float
    avg_depth: float
    confidence: str


def compute_coverage(lines: list[ExpectedWinrateNode]) -> float:
    """Total probability mass of the expanded lines, clamped to [0, 1]."""
    total = sum(n.cumulative_prob for n in lines)
    return max(0.0, min(1.0, total))


def confidence_from_coverage(coverage: float) -> str:
    if coverage >= _CONFIDENCE_HIGH:
        return "high"
    if coverage >= _CONFIDENCE_MEDIUM:
        return "medium"
    return "low"


def compute_expected(lines: list[ExpectedWinrateNode], base_winrate: float) -> float:
    """Probability-weighted winrate; unevaluated mass falls back to the base."""
    weighted = 0.0
    covered = 0.0
    for line in lines:
        if line.leaf is not None:
            weighted += line.cumulative_prob * line.leaf.winrate
            covered += line.cumulative_prob
    return weighted + (1 - covered) * base_winrate


def average_depth(lines: list[ExpectedWinrateNode]) -> float:
    if not lines:
        return 0.0
    return sum(len(n.path) for n in lines) / len(lines)


def summarize(
    lines: list[ExpectedWinrateNode], base_winrate: float
) -> ExpectedWinrateSummary:
    coverage = compute_coverage(lines)
    return ExpectedWinrateSummary(
        coverage=coverage,
        expected=compute_expected(lines, base_winrate),
        avg_depth=average_depth(lines),
        confidence=confidence_from_coverage(coverage),
    )
