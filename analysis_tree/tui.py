"""Terminal view of an analysis tree.

Renders the main line and its variations with move-quality glyphs using
Rich. Evaluations can be supplied as a JSON file keyed by FEN:

    {"<fen>": {"stockfish": {...}, "maia": {"policy": {...}}}}

CLI:
    analysis-tree show game.pgn --evals evals.json
    analysis-tree mistakes game.pgn --color white --evals evals.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from analysis_tree import evaluation
from analysis_tree.classification import (
    DEFAULT_THRESHOLDS,
    ClassificationThresholds,
    classify_node,
)
from analysis_tree.errors import AnalysisTreeError
from analysis_tree.fen import fullmove_number, position_key
from analysis_tree.models import (
    EvaluationSource,
    StockfishEvaluation,
    Verdict,
    record_from_dict,
)
from analysis_tree.review import extract_player_mistakes
from analysis_tree.tree import GameNode, GameTree

_LOGGER = logging.getLogger(__name__)

_PLACEHOLDER = "–"

_VERDICT_STYLES = {
    Verdict.BLUNDER: "bold red",
    Verdict.INACCURACY: "yellow",
    Verdict.EXCELLENT: "bold cyan",
    Verdict.GOOD: "green",
    Verdict.NEUTRAL: "",
    Verdict.UNCLASSIFIED: "dim",
}


def _load_json(path: Path) -> dict | None:
    """Load a JSON object from a file.

    Returns:
        Parsed dict or None if the file is missing, corrupt or not an object.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def load_evaluations(tree: GameTree, data: dict) -> int:
    """Attach evaluations from a FEN-keyed dict to every matching node.

    Positions match on their canonical key, so move counters may differ.
    Malformed entries are skipped with a warning.

    Args:
        tree: Tree to annotate.
        data: ``{fen: {source_value: record_dict}}``.

    Returns:
        Number of records attached.
    """
    by_key: dict[str, dict] = {}
    for fen, entry in data.items():
        if isinstance(entry, dict):
            by_key[position_key(fen)] = entry

    attached = 0
    for node in tree.nodes():
        entry = by_key.get(position_key(node.fen))
        if entry is None:
            continue
        for source in EvaluationSource:
            raw = entry.get(source.value)
            if raw is None:
                continue
            try:
                evaluation.attach(node, source, record_from_dict(source, raw))
            except ValueError as exc:
                _LOGGER.warning("Skipping %s data for %s: %s", source.value, node.fen, exc)
                continue
            attached += 1
    return attached


def format_eval(node: GameNode) -> str:
    """Engine score of a position for display, or a placeholder.

    Records with winrates show the best move's win probability; records
    with only centipawns show the White-relative score in pawns.
    """
    record = evaluation.get(node, EvaluationSource.TACTICAL_ENGINE)
    if not isinstance(record, StockfishEvaluation):
        return _PLACEHOLDER
    if record.winrate_vec is not None and record.model_move in record.winrate_vec:
        return f"{record.winrate_vec[record.model_move] * 100:.0f}%"
    return f"{record.model_optimal_cp / 100:+.2f}"


def _move_label(node: GameNode, thresholds: ClassificationThresholds) -> Text:
    parent = node.parent
    if parent is None or node.move is None:
        raise ValueError(f"{node!r} has no move to label")
    number = fullmove_number(parent.fen)
    prefix = f"{number}." if parent.turn == "w" else f"{number}..."
    verdict = classify_node(node, thresholds)

    label = Text(f"{prefix} {node.move.san}")
    if verdict.glyph and verdict is not Verdict.UNCLASSIFIED:
        label.append(verdict.glyph, style=_VERDICT_STYLES[verdict])
    label.append(f"  [{format_eval(node)}]", style="dim")
    return label


def _add_line(
    branch: Tree,
    start: GameNode,
    tree: GameTree,
    thresholds: ClassificationThresholds,
) -> None:
    for node in tree.iter_main_line(start):
        item = branch.add(_move_label(node, thresholds))
        parent = node.parent
        if parent is not None and parent.main_child is node:
            for variation in parent.variations:
                _add_line(item, variation, tree, thresholds)


def render_tree(
    tree: GameTree,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> Tree:
    """Render the game as a Rich tree: main line with nested variations.

    Args:
        tree: Game to render.
        thresholds: Cut-offs used for move glyphs.

    Returns:
        Rich Tree ready for ``Console.print``.
    """
    root = tree.get_root()
    view = Tree(Text(f"Start  [{format_eval(root)}]", style="bold"))
    if root.main_child is not None:
        # Root variations are attached under the first main-line move
        _add_line(view, root.main_child, tree, thresholds)
    return view


def render_main_line_table(
    tree: GameTree,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> Table:
    """Main line as a table of ply, move, evaluation and verdict."""
    table = Table(title="Main line")
    table.add_column("Ply", justify="right")
    table.add_column("Move")
    table.add_column("Eval", justify="right")
    table.add_column("Verdict")

    for ply, node in enumerate(tree.iter_main_line()):
        if node.move is None:
            continue
        verdict = classify_node(node, thresholds)
        table.add_row(
            str(ply),
            node.move.san,
            format_eval(node),
            Text(verdict.value, style=_VERDICT_STYLES[verdict]),
        )
    return table


def _load_tree(args: argparse.Namespace, console: Console) -> tuple[GameTree, ClassificationThresholds]:
    pgn_path = Path(args.pgn)
    try:
        pgn_text = pgn_path.read_text(encoding="utf-8")
    except OSError as exc:
        console.print(f"[red]Cannot read {pgn_path}: {exc}[/red]")
        sys.exit(1)

    try:
        tree = GameTree.from_pgn(pgn_text)
    except AnalysisTreeError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    thresholds = DEFAULT_THRESHOLDS
    if args.thresholds:
        try:
            thresholds = ClassificationThresholds.from_file(args.thresholds)
        except (OSError, ValueError) as exc:
            console.print(f"[red]Bad thresholds file: {exc}[/red]")
            sys.exit(1)

    if args.evals:
        data = _load_json(Path(args.evals))
        if data is None:
            console.print(f"[yellow]No evaluations loaded from {args.evals}[/yellow]")
        else:
            count = load_evaluations(tree, data)
            _LOGGER.info("Attached %d evaluation records", count)

    return tree, thresholds


def _cli_show(args: argparse.Namespace, console: Console) -> None:
    tree, thresholds = _load_tree(args, console)
    console.print(render_tree(tree, thresholds))
    console.print(render_main_line_table(tree, thresholds))


def _cli_mistakes(args: argparse.Namespace, console: Console) -> None:
    tree, thresholds = _load_tree(args, console)
    mistakes = extract_player_mistakes(tree, args.color, thresholds)
    if not mistakes:
        console.print(f"No mistakes found for {args.color}.")
        return
    for mistake in mistakes:
        console.print(
            f"Ply {mistake.move_index}: {mistake.san} ({mistake.verdict.value}), "
            f"best was {mistake.best_move_san}"
        )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for analysis-tree."""
    parser = argparse.ArgumentParser(
        description="Inspect a chess game tree with engine move classification"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    for name, help_text in (
        ("show", "Render the game tree with move glyphs"),
        ("mistakes", "List one player's main-line mistakes"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("pgn", type=str, help="PGN file to load")
        sub.add_argument("--evals", type=str, help="JSON evaluations keyed by FEN")
        sub.add_argument("--thresholds", type=str, help="JSON classification thresholds")
        if name == "mistakes":
            sub.add_argument(
                "--color", choices=("white", "black"), default="white",
                help="Player to review",
            )

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    console = Console()
    if args.command == "show":
        _cli_show(args, console)
    elif args.command == "mistakes":
        _cli_mistakes(args, console)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
