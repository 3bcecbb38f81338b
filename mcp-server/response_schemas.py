"""Response building, minification and validation for MCP tool responses.

Node states are minified to keep LLM context small: child lists become
SAN lists, evaluation records become presence flags plus one display
score, and main lines become PGN-style move strings (1.e4 e5 2.Nf3 ...).
"""

from __future__ import annotations

import os

from analysis_tree import evaluation
from analysis_tree.classification import ClassificationThresholds, classify_node
from analysis_tree.models import EvaluationSource
from analysis_tree.navigation import TreeController
from analysis_tree.tree import GameNode

_VALIDATE_ENV = "ANALYSIS_TREE_VALIDATE"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_node_state(
    session_id: str,
    controller: TreeController,
    thresholds: ClassificationThresholds,
    node: GameNode | None = None,
) -> dict:
    """Build the full state dict for a node (default: the cursor).

    Args:
        session_id: UUID of the session.
        controller: Session navigation controller.
        thresholds: Session classification thresholds.
        node: Node to describe; defaults to the current node.

    Returns:
        Dict with position, move, topology, evaluation and verdict fields.
    """
    node = node if node is not None else controller.current_node
    best = evaluation.best_move_evaluation(node, EvaluationSource.TACTICAL_ENGINE)

    return {
        "session_id": session_id,
        "node_id": node.node_id,
        "fen": node.fen,
        "san": node.san,
        "uci": node.uci,
        "last_move": list(node.move.last_move) if node.move else None,
        "check": node.check,
        "turn": node.turn,
        "ply": node.ply,
        "ply_count": controller.ply_count,
        "current_index": controller.current_index,
        "orientation": controller.orientation,
        "is_main_line": node.is_main_line,
        "parent_id": node.parent.node_id if node.parent else None,
        "main_child": node.main_child.san if node.main_child else None,
        "children": [
            {"node_id": c.node_id, "san": c.san, "uci": c.uci} for c in node.children
        ],
        "evaluations": {
            source.value: source in node.evaluations for source in EvaluationSource
        },
        "eval_score": best,
        "verdict": classify_node(node, thresholds).value,
    }


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_node_state(state: dict) -> dict:
    """Minify a node state dict for MCP response.

    Collapses children to SAN strings and drops the full-board check and
    last_move highlight fields the agent does not need.

    Args:
        state: Full node state (as produced by build_node_state).

    Returns:
        Minified dict with reduced token footprint.
    """
    result = {}

    for key in (
        "session_id", "node_id", "fen", "san", "uci", "turn", "ply",
        "ply_count", "current_index", "orientation", "is_main_line",
        "parent_id", "main_child", "eval_score", "verdict",
    ):
        if key in state:
            result[key] = state[key]

    children = state.get("children", [])
    if isinstance(children, list):
        result["children"] = [
            f"{c['san']}#{c['node_id']}" if isinstance(c, dict) else c
            for c in children
        ]
    else:
        result["children"] = []

    evaluations = state.get("evaluations", {})
    result["evaluated_by"] = sorted(k for k, present in evaluations.items() if present)

    # Removed fields: last_move, check

    return result


def minify_main_line(
    sans: list[str], verdicts: list[str], white_first: bool = True
) -> dict:
    """Main line as a PGN move string plus one verdict per move."""
    return {
        "moves": _moves_to_pgn_string(sans, white_first),
        "verdicts": verdicts,
        "length": len(sans),
    }


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str], white_first: bool = True) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'

    Args:
        moves: List of SAN move strings.
        white_first: False when the line starts with a Black move.

    Returns:
        PGN-formatted move string.
    """
    if not moves:
        return ""

    offset = 0 if white_first else 1
    parts = []
    for i, move in enumerate(moves):
        ply = i + offset
        if ply % 2 == 0:
            parts.append(f"{ply // 2 + 1}.{move}")
        elif i == 0:
            parts.append(f"{ply // 2 + 1}...{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

NODE_STATE_SCHEMA = {
    "session_id": str,
    "node_id": int,
    "fen": str,
    "san": (str, type(None)),
    "uci": (str, type(None)),
    "turn": str,
    "ply": int,
    "ply_count": int,
    "current_index": int,
    "orientation": str,
    "is_main_line": bool,
    "children": list,
    "evaluated_by": list,
    "eval_score": (int, float, type(None)),
    "verdict": str,
}

CLASSIFICATION_SCHEMA = {
    "node_id": int,
    "san": (str, type(None)),
    "verdict": str,
    "glyph": str,
    "best_move_eval": (int, float, type(None)),
    "played_move_eval": (int, float, type(None)),
    "human_probability": (int, float, type(None)),
}

MAIN_LINE_SCHEMA = {
    "moves": str,
    "verdicts": list,
    "length": int,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when ANALYSIS_TREE_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get(_VALIDATE_ENV) != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        elif not isinstance(value, expected_types):
            errors.append(
                f"Key '{key}': expected {expected_types.__name__}, "
                f"got {type(value).__name__}"
            )

    return errors
