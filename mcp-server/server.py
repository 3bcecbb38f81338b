"""MCP server for the chess analysis tree.

Exposes tree building, navigation, evaluation attachment and move
classification as FastMCP tools. Sessions are stored in memory keyed by
UUID; each session owns one GameTree, its TreeController and its
classification thresholds. Errors are returned as {"error": ...} dicts.
"""

from __future__ import annotations

import logging
import sys
import uuid
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP  # noqa: E402

from analysis_tree import evaluation  # noqa: E402
from analysis_tree.classification import (  # noqa: E402
    DEFAULT_THRESHOLDS,
    ClassificationThresholds,
    classify_node,
)
from analysis_tree.errors import AnalysisTreeError  # noqa: E402
from analysis_tree.models import EvaluationSource, record_from_dict  # noqa: E402
from analysis_tree.navigation import TreeController  # noqa: E402
from analysis_tree.pruning import should_stop_analyzing  # noqa: E402
from analysis_tree.review import extract_player_mistakes  # noqa: E402
from analysis_tree.tree import GameNode, GameTree  # noqa: E402

from response_schemas import (  # noqa: E402
    build_node_state,
    minify_main_line,
    minify_node_state,
)

_LOGGER = logging.getLogger(__name__)

mcp = FastMCP("chess-analysis-tree")

# In-memory session store: session_id -> {tree, controller, thresholds}
_sessions: dict[str, dict] = {}


def _get_session(session_id: str) -> dict | None:
    """Look up a session by ID.

    Args:
        session_id: UUID string.

    Returns:
        Session record dict or None if not found.
    """
    return _sessions.get(session_id)


def _not_found(session_id: str) -> dict:
    return {"error": f"Session not found: {session_id}"}


def _state(session_id: str, session: dict, node: GameNode | None = None) -> dict:
    return minify_node_state(
        build_node_state(
            session_id, session["controller"], session["thresholds"], node
        )
    )


def _resolve_node(session: dict, node_id: int | None) -> GameNode | None:
    """Node by id, or the cursor when node_id is None."""
    if node_id is None:
        return session["controller"].current_node
    return session["tree"].get_node(node_id)


def _open_session(tree: GameTree, orientation: str) -> dict:
    try:
        controller = TreeController(tree, orientation=orientation)
    except ValueError as exc:
        return {"error": str(exc)}

    session_id = str(uuid.uuid4())
    _sessions[session_id] = {
        "tree": tree,
        "controller": controller,
        "thresholds": DEFAULT_THRESHOLDS,
    }
    _LOGGER.info("Opened session %s with %d nodes", session_id, len(tree))
    return _state(session_id, _sessions[session_id])


# ---------------------------------------------------------------------------
# Session tools
# ---------------------------------------------------------------------------


@mcp.tool()
def new_tree(starting_fen: str | None = None, orientation: str = "white") -> dict:
    """Start a new analysis tree.

    Args:
        starting_fen: Optional starting position FEN. Default: standard start.
        orientation: Board orientation, 'white' or 'black'.

    Returns:
        Node state of the root.
    """
    try:
        tree = GameTree(starting_fen) if starting_fen else GameTree()
    except AnalysisTreeError as exc:
        return {"error": str(exc)}
    return _open_session(tree, orientation)


@mcp.tool()
def load_pgn(pgn: str, orientation: str = "white") -> dict:
    """Load a PGN game, variations included, into a new session.

    Args:
        pgn: PGN text.
        orientation: Board orientation, 'white' or 'black'.

    Returns:
        Node state of the root.
    """
    try:
        tree = GameTree.from_pgn(pgn)
    except AnalysisTreeError as exc:
        return {"error": str(exc)}
    return _open_session(tree, orientation)


@mcp.tool()
def set_thresholds(session_id: str, thresholds: dict) -> dict:
    """Replace the session's classification thresholds.

    Args:
        session_id: UUID of the session.
        thresholds: Option dict, e.g. {"BLUNDER_THRESHOLD": 0.15}. Missing
            options keep their defaults.

    Returns:
        The thresholds now in effect.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        session["thresholds"] = ClassificationThresholds.from_dict(thresholds)
    except (TypeError, ValueError) as exc:
        return {"error": f"Invalid thresholds: {exc}"}
    return session["thresholds"].to_dict()


# ---------------------------------------------------------------------------
# Tree and navigation tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_node(session_id: str, node_id: int | None = None) -> dict:
    """Describe a node without moving the cursor.

    Args:
        session_id: UUID of the session.
        node_id: Node to describe. Default: the current node.

    Returns:
        Node state dict.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    node = _resolve_node(session, node_id)
    if node is None:
        return {"error": f"Node not found: {node_id}"}
    return _state(session_id, session, node)


@mcp.tool()
def play_move(session_id: str, move: str) -> dict:
    """Play a move from the current node and move the cursor to it.

    Reuses the existing child when the move was already played here;
    otherwise adds a new variation (or the main continuation at a leaf).

    Args:
        session_id: UUID of the session.
        move: Move in UCI ('e2e4') or SAN ('e4').

    Returns:
        Node state of the resulting node.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    tree: GameTree = session["tree"]
    controller: TreeController = session["controller"]
    try:
        child = tree.play_move(controller.current_node, move)
    except AnalysisTreeError as exc:
        return {"error": str(exc)}

    controller.refresh()
    controller.go_to_node(child)
    return _state(session_id, session)


@mcp.tool()
def navigate(session_id: str, direction: str, node_id: int | None = None) -> dict:
    """Move the cursor.

    Args:
        session_id: UUID of the session.
        direction: 'next' (main child), 'previous' (parent), 'root', or
            'node' (jump to node_id).
        node_id: Target node when direction is 'node'.

    Returns:
        Node state of the new current node.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    controller: TreeController = session["controller"]
    if direction == "next":
        controller.go_to_next_node()
    elif direction == "previous":
        controller.go_to_previous_node()
    elif direction == "root":
        controller.go_to_root_node()
    elif direction == "node":
        node = session["tree"].get_node(node_id) if node_id is not None else None
        if node is None:
            return {"error": f"Node not found: {node_id}"}
        controller.go_to_node(node)
    else:
        return {"error": f"Unknown direction: {direction}. Use next, previous, root or node"}

    return _state(session_id, session)


@mcp.tool()
def promote_variation(session_id: str) -> dict:
    """Make the current node the main continuation of its parent.

    Args:
        session_id: UUID of the session.

    Returns:
        Node state of the current node.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        session["tree"].promote_to_main(session["controller"].current_node)
    except AnalysisTreeError as exc:
        return {"error": str(exc)}

    session["controller"].refresh()
    return _state(session_id, session)


@mcp.tool()
def remove_variation(session_id: str) -> dict:
    """Delete the current node and its subtree; the cursor moves to the parent.

    Args:
        session_id: UUID of the session.

    Returns:
        Node state of the parent.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    controller: TreeController = session["controller"]
    node = controller.current_node
    parent = node.parent
    if parent is None:
        return {"error": "Cannot remove the root position"}

    controller.go_to_node(parent)
    try:
        session["tree"].remove_variation(node)
    except AnalysisTreeError as exc:
        return {"error": str(exc)}

    controller.refresh()
    return _state(session_id, session)


@mcp.tool()
def get_main_line(session_id: str) -> dict:
    """Main line moves with one verdict per move.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with moves (PGN move string), verdicts and length.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    tree: GameTree = session["tree"]
    sans: list[str] = []
    verdicts: list[str] = []
    for node in tree.iter_main_line():
        if node.move is None:
            continue
        sans.append(node.move.san)
        verdicts.append(classify_node(node, session["thresholds"]).value)
    return minify_main_line(sans, verdicts, tree.get_root().turn == "w")


@mcp.tool()
def get_pgn(session_id: str) -> dict:
    """Export the tree as PGN, variations included.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with pgn string.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    return {"pgn": session["tree"].to_pgn()}


# ---------------------------------------------------------------------------
# Evaluation and classification tools
# ---------------------------------------------------------------------------


@mcp.tool()
def attach_evaluation(
    session_id: str,
    source: str,
    data: dict,
    node_id: int | None = None,
) -> dict:
    """Attach an engine evaluation to a node, replacing any earlier one.

    Args:
        session_id: UUID of the session.
        source: 'stockfish' or 'maia'.
        data: Stockfish fields (depth, model_move, model_optimal_cp, cp_vec,
            cp_relative_vec, optional winrate_vec, winrate_loss_vec) or a
            Maia move map ({"policy": {uci: prob}}).
        node_id: Target node. Default: the current node.

    Returns:
        Dict with node_id, source and whether an earlier record was replaced.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        eval_source = EvaluationSource(source)
    except ValueError:
        valid = [s.value for s in EvaluationSource]
        return {"error": f"Unknown evaluation source: {source}. Valid: {valid}"}

    node = _resolve_node(session, node_id)
    if node is None:
        return {"error": f"Node not found: {node_id}"}

    try:
        record = record_from_dict(eval_source, data)
        replaced = eval_source in node.evaluations
        evaluation.attach(node, eval_source, record)
    except ValueError as exc:
        return {"error": f"Invalid evaluation: {exc}"}

    return {"node_id": node.node_id, "source": eval_source.value, "replaced": replaced}


@mcp.tool()
def classify_move(session_id: str, node_id: int | None = None) -> dict:
    """Classify the move that led to a node.

    Args:
        session_id: UUID of the session.
        node_id: Node to classify. Default: the current node.

    Returns:
        Dict with verdict, glyph and the scores the verdict was based on.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    node = _resolve_node(session, node_id)
    if node is None:
        return {"error": f"Node not found: {node_id}"}

    verdict = classify_node(node, session["thresholds"])
    parent = node.parent
    best = played = probability = None
    if parent is not None and node.uci is not None:
        best = evaluation.best_move_evaluation(parent, EvaluationSource.TACTICAL_ENGINE)
        played = evaluation.move_evaluation(parent, node.uci)
        probability = evaluation.human_probability(parent, node.uci)

    return {
        "node_id": node.node_id,
        "san": node.san,
        "verdict": verdict.value,
        "glyph": verdict.glyph,
        "best_move_eval": best,
        "played_move_eval": played,
        "human_probability": probability,
    }


@mcp.tool()
def get_mistakes(session_id: str, player_color: str = "white") -> dict:
    """List a player's main-line blunders and inaccuracies.

    Args:
        session_id: UUID of the session.
        player_color: 'white' or 'black'.

    Returns:
        Dict with mistakes list (ply index, played and best move in SAN).
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)
    if player_color not in ("white", "black"):
        return {"error": f"player_color must be 'white' or 'black', got {player_color}"}

    mistakes = extract_player_mistakes(
        session["tree"], player_color, session["thresholds"]
    )
    return {
        "player_color": player_color,
        "mistakes": [
            {
                "move_index": m.move_index,
                "fen": m.fen,
                "san": m.san,
                "verdict": m.verdict.value,
                "best_move_san": m.best_move_san,
            }
            for m in mistakes
        ],
    }


@mcp.tool()
def should_stop(
    is_analyzing_players_turn: bool,
    winrate: float,
    min_winrate: float,
) -> dict:
    """Ask whether a candidate line is still worth deepening.

    Args:
        is_analyzing_players_turn: True when the studied player is to move.
        winrate: Studied player's win probability in the candidate position.
        min_winrate: Floor below which the player's own lines are dropped.

    Returns:
        Dict with stop flag.
    """
    return {"stop": should_stop_analyzing(is_analyzing_players_turn, winrate, min_winrate)}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run()
