"""Move classification from win-probability loss and human-model surprise.

A move is always compared against the best move available in the same
position, never against the evaluation of the previous position, so an
opponent's earlier error is not charged to the current player.

Verdicts are computed on demand and never cached on nodes, so
re-attaching a deeper evaluation changes the next answer without any
invalidation step.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from analysis_tree import evaluation
from analysis_tree.models import EvaluationSource, StockfishEvaluation, Verdict
from analysis_tree.tree import GameNode, GameTree

# Evaluations shallower than this are too noisy to label moves with
MIN_STOCKFISH_DEPTH = 13

# Option names as they appear in threshold files
_OPTION_ALIASES = {
    "BLUNDER_THRESHOLD": "blunder_threshold",
    "INACCURACY_THRESHOLD": "inaccuracy_threshold",
    "EXCELLENT_WINRATE_THRESHOLD": "excellent_winrate_threshold",
    "MAIA_UNLIKELY_THRESHOLD": "maia_unlikely_threshold",
    "GOOD_THRESHOLD": "good_threshold",
    "MIN_DEPTH": "min_depth",
}

# Thresholds that must be probabilities; good_threshold is a signed delta
_PROBABILITY_FIELDS = (
    "blunder_threshold",
    "inaccuracy_threshold",
    "excellent_winrate_threshold",
    "maia_unlikely_threshold",
)


@dataclass(frozen=True)
class ClassificationThresholds:
    """Cut-offs applied to win-probability loss (best minus played)."""

    blunder_threshold: float = 0.10
    inaccuracy_threshold: float = 0.05
    excellent_winrate_threshold: float = 0.02
    maia_unlikely_threshold: float = 0.10
    good_threshold: float = -0.05
    min_depth: int = MIN_STOCKFISH_DEPTH

    def __post_init__(self) -> None:
        for name in _PROBABILITY_FIELDS:
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if not -1.0 <= self.good_threshold <= 1.0:
            raise ValueError(
                f"good_threshold must be in [-1, 1], got {self.good_threshold}"
            )
        if self.min_depth < 0:
            raise ValueError(f"min_depth must be non-negative, got {self.min_depth}")

    @classmethod
    def from_dict(cls, data: dict) -> ClassificationThresholds:
        """Build thresholds from a dict, filling gaps with defaults.

        Keys may use the upper-case option names (``BLUNDER_THRESHOLD``) or
        the field names (``blunder_threshold``).

        Raises:
            ValueError: On unknown keys or out-of-range values.
        """
        known = {f.name for f in fields(cls)}
        values: dict = {}
        for key, value in data.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown classification option: {key}")
            values[name] = int(value) if name == "min_depth" else float(value)
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path) -> ClassificationThresholds:
        """Load thresholds from a JSON object file.

        Raises:
            ValueError: If the file is not a JSON object or values are invalid.
            OSError: If the file cannot be read.
        """
        text = Path(path).read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Thresholds file is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("Thresholds file must contain a JSON object")
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_THRESHOLDS = ClassificationThresholds()


def classify(
    played_move_eval: float | None,
    best_move_eval: float | None,
    human_probability: float | None,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> Verdict:
    """Classify a played move.

    Both evaluations must already be in the same player's win-probability
    frame. Every comparison is strict.

    Args:
        played_move_eval: Win probability after the played move.
        best_move_eval: Win probability of the best move in the same position.
        human_probability: Human-model probability of the played move, or
            None when no human-model output exists.
        thresholds: Cut-offs to apply.

    Returns:
        The verdict; UNCLASSIFIED when either evaluation is missing.
    """
    if best_move_eval is None or played_move_eval is None:
        return Verdict.UNCLASSIFIED

    loss = best_move_eval - played_move_eval

    if loss > thresholds.blunder_threshold:
        return Verdict.BLUNDER
    if loss > thresholds.inaccuracy_threshold:
        return Verdict.INACCURACY
    if (
        loss < thresholds.excellent_winrate_threshold
        and human_probability is not None
        and human_probability < thresholds.maia_unlikely_threshold
    ):
        return Verdict.EXCELLENT
    if loss < thresholds.good_threshold:
        return Verdict.GOOD
    return Verdict.NEUTRAL


def classify_node(
    node: GameNode,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> Verdict:
    """Classify the move that led to ``node``.

    Reads the parent's tactical record for the best move and the played
    move's score, and the parent's human-model record for the played
    move's probability.
    """
    parent = node.parent
    if parent is None or node.uci is None:
        return Verdict.UNCLASSIFIED

    record = evaluation.get(parent, EvaluationSource.TACTICAL_ENGINE)
    if not isinstance(record, StockfishEvaluation) or record.depth < thresholds.min_depth:
        return Verdict.UNCLASSIFIED

    best = evaluation.best_move_evaluation(parent, EvaluationSource.TACTICAL_ENGINE)
    played = evaluation.move_evaluation(parent, node.uci)
    probability = evaluation.human_probability(parent, node.uci)
    return classify(played, best, probability, thresholds)


def classify_main_line(
    tree: GameTree,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> list[tuple[GameNode, Verdict]]:
    """Verdict for every move of the main line, in order."""
    return [
        (node, classify_node(node, thresholds))
        for node in tree.iter_main_line()
        if node.move is not None
    ]
