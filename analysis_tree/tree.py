"""Branching game tree: positions connected by moves, with variations.

The tree owns every node in an arena keyed by node id. Parents own
their children; a child refers back to its parent only through its id,
resolved via a weak reference to the owning tree, so parent and child
never hold strong references to each other.

Usage:
    from analysis_tree.tree import GameTree
    tree = GameTree()
    node = tree.add_move_to_main_line("e2e4")
    tree.get_main_line()   # [root, node]
"""

from __future__ import annotations

import io
import itertools
import logging
import weakref
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

import chess
import chess.pgn

from analysis_tree.errors import (
    ForeignNodeError,
    IllegalMoveError,
    InvalidPositionError,
    NotAChildError,
)
from analysis_tree.fen import STARTING_FEN, move_number, parse_board, turn_of
from analysis_tree.models import EvaluationRecord, EvaluationSource, Move

_LOGGER = logging.getLogger(__name__)


class GameNode:
    """A position in the tree, reached by ``move`` from its parent."""

    __slots__ = (
        "_id",
        "_tree_ref",
        "_fen",
        "_move",
        "_parent_id",
        "_children",
        "_main_child",
        "_evaluations",
        "_time",
        "__weakref__",
    )

    def __init__(
        self,
        node_id: int,
        tree: GameTree,
        fen: str,
        move: Move | None = None,
        parent_id: int | None = None,
        time: float | None = None,
    ) -> None:
        self._id = node_id
        self._tree_ref = weakref.ref(tree)
        self._fen = fen
        self._move = move
        self._parent_id = parent_id
        self._children: list[GameNode] = []
        self._main_child: GameNode | None = None
        self._evaluations: dict[EvaluationSource, EvaluationRecord] = {}
        self._time = time

    def __repr__(self) -> str:
        label = self._move.san if self._move else "root"
        return f"GameNode(id={self._id}, move={label!r})"

    # ── Accessors ────────────────────────────────────────────────────────

    @property
    def node_id(self) -> int:
        return self._id

    @property
    def fen(self) -> str:
        return self._fen

    @property
    def move(self) -> Move | None:
        return self._move

    @property
    def san(self) -> str | None:
        return self._move.san if self._move else None

    @property
    def uci(self) -> str | None:
        return self._move.uci if self._move else None

    @property
    def check(self) -> bool:
        return self._move.check if self._move else False

    @property
    def time(self) -> float | None:
        return self._time

    @property
    def tree(self) -> GameTree | None:
        return self._tree_ref()

    @property
    def parent(self) -> GameNode | None:
        """The parent node, or None at the root or once detached."""
        tree = self._tree_ref()
        if tree is None or self._parent_id is None or not tree.owns(self):
            return None
        return tree._nodes.get(self._parent_id)

    @property
    def children(self) -> tuple[GameNode, ...]:
        return tuple(self._children)

    @property
    def main_child(self) -> GameNode | None:
        return self._main_child

    @property
    def variations(self) -> tuple[GameNode, ...]:
        """Children other than the main child, in discovery order."""
        return tuple(c for c in self._children if c is not self._main_child)

    @property
    def is_main_line(self) -> bool:
        """True when every step from the root to this node is a main child."""
        node: GameNode = self
        parent = node.parent
        while parent is not None:
            if parent.main_child is not node:
                return False
            node, parent = parent, parent.parent
        return True

    @property
    def evaluations(self) -> Mapping[EvaluationSource, EvaluationRecord]:
        """Read-only view of the attached evaluations."""
        return MappingProxyType(self._evaluations)

    @property
    def turn(self) -> str:
        return turn_of(self._fen)

    @property
    def move_number(self) -> int:
        return move_number(self._fen)

    @property
    def ply(self) -> int:
        """Distance from the root."""
        depth = 0
        parent = self.parent
        while parent is not None:
            depth += 1
            parent = parent.parent
        return depth

    def _replace_evaluations(
        self, evaluations: dict[EvaluationSource, EvaluationRecord]
    ) -> None:
        # Swap the whole mapping so readers never see a half-written entry.
        self._evaluations = evaluations


class GameTree:
    """Owns the root and every node; the only way to mutate the tree.

    Nodes refer back to the tree weakly. Callers must keep the tree alive
    for as long as they use its nodes: once the tree is collected, a
    node's ``parent`` is None, its ``ply`` is 0 and its move classifies as
    unclassified.
    """

    def __init__(self, initial_fen: str = STARTING_FEN) -> None:
        """Create a tree holding a single root position.

        Args:
            initial_fen: Starting position FEN.

        Raises:
            InvalidPositionError: If the FEN is malformed.
        """
        self._nodes: dict[int, GameNode] = {}
        self._ids = itertools.count()
        self._headers: dict[str, str] = {}
        self._root = self.create_root(initial_fen)

    # ── Construction ─────────────────────────────────────────────────────

    def create_root(self, fen: str) -> GameNode:
        """Allocate a new root, discarding any existing nodes.

        Args:
            fen: Starting position FEN.

        Returns:
            The new root node.

        Raises:
            InvalidPositionError: If the FEN is malformed.
        """
        board = parse_board(fen)
        normalized = board.fen()

        self._nodes.clear()
        self._headers.pop("SetUp", None)
        self._headers.pop("FEN", None)
        if normalized != STARTING_FEN:
            self._headers["SetUp"] = "1"
            self._headers["FEN"] = normalized

        root = GameNode(next(self._ids), self, normalized)
        self._nodes[root.node_id] = root
        self._root = root
        _LOGGER.debug("Created root %s", normalized)
        return root

    def add_child(
        self,
        parent: GameNode,
        move: Move,
        fen: str,
        time: float | None = None,
    ) -> GameNode:
        """Append a child position to ``parent``.

        The first child of a node becomes its main child. No check is made
        for an existing child with the same move; use ``find_child`` or
        ``add_variation`` for idempotent insertion.

        Args:
            parent: Node the move is played from.
            move: The move played.
            fen: Resulting position.
            time: Optional seconds spent on the move.

        Returns:
            The new child node.

        Raises:
            ForeignNodeError: If ``parent`` is not in this tree.
        """
        self._require_owned(parent)
        child = GameNode(
            next(self._ids), self, fen, move=move, parent_id=parent.node_id, time=time
        )
        self._nodes[child.node_id] = child
        parent._children.append(child)
        if parent._main_child is None:
            parent._main_child = child
        _LOGGER.debug("Added %s under node %d", move.uci, parent.node_id)
        return child

    def find_child(self, parent: GameNode, uci: str) -> GameNode | None:
        """Return the first child of ``parent`` reached by ``uci``."""
        for child in parent._children:
            if child.uci == uci:
                return child
        return None

    def add_variation(
        self,
        parent: GameNode,
        move: Move,
        fen: str,
        time: float | None = None,
    ) -> GameNode:
        """Add ``move`` under ``parent`` unless a child with it already exists."""
        existing = self.find_child(parent, move.uci)
        if existing is not None:
            return existing
        return self.add_child(parent, move, fen, time)

    def add_main_move(
        self,
        parent: GameNode,
        move: Move,
        fen: str,
        time: float | None = None,
    ) -> GameNode:
        """Add ``move`` under ``parent`` and make it the main continuation."""
        child = self.add_variation(parent, move, fen, time)
        self.promote_to_main(child)
        return child

    def play_move(
        self,
        parent: GameNode,
        move_text: str,
        time: float | None = None,
    ) -> GameNode:
        """Play a UCI or SAN move from ``parent``, reusing an existing child.

        Args:
            parent: Node to play from.
            move_text: Move in UCI (``e2e4``) or SAN (``e4``).
            time: Optional seconds spent on the move.

        Returns:
            The child node reached by the move.

        Raises:
            IllegalMoveError: If the move is not legal in the position.
            ForeignNodeError: If ``parent`` is not in this tree.
        """
        self._require_owned(parent)
        board = parse_board(parent.fen)
        try:
            chess_move = board.parse_uci(move_text)
        except ValueError:
            try:
                chess_move = board.parse_san(move_text)
            except ValueError as exc:
                raise IllegalMoveError(move_text, parent.fen) from exc
        if not chess_move:  # null move
            raise IllegalMoveError(move_text, parent.fen)

        move = Move.from_chess(board, chess_move)
        return self.add_variation(parent, move, move.board, time)

    def add_move_to_main_line(self, uci: str, time: float | None = None) -> GameNode:
        """Extend the main line by one move."""
        return self.play_move(self.get_last_main_line_node(), uci, time)

    def add_moves_to_main_line(
        self,
        moves: Iterable[str],
        times: Iterable[float] | None = None,
    ) -> GameNode:
        """Extend the main line by several moves; returns the last node."""
        node = self.get_last_main_line_node()
        time_list = list(times) if times is not None else []
        for i, uci in enumerate(moves):
            time = time_list[i] if i < len(time_list) else None
            node = self.add_move_to_main_line(uci, time)
        return node

    # ── Topology changes ─────────────────────────────────────────────────

    def promote_to_main(self, node: GameNode) -> None:
        """Make ``node`` its parent's main child.

        Raises:
            NotAChildError: If ``node`` is the root or not among its
                parent's children.
            ForeignNodeError: If ``node`` is not in this tree.
        """
        self._require_owned(node)
        parent = self._checked_parent(node)
        parent._main_child = node
        _LOGGER.debug("Promoted node %d to main line", node.node_id)

    def remove_variation(self, node: GameNode) -> None:
        """Detach ``node`` and its subtree.

        If ``node`` was the main child, the first remaining child becomes
        main.

        Raises:
            NotAChildError: If ``node`` is the root or not among its
                parent's children.
            ForeignNodeError: If ``node`` is not in this tree.
        """
        self._require_owned(node)
        parent = self._checked_parent(node)

        parent._children = [c for c in parent._children if c is not node]
        if parent._main_child is node:
            parent._main_child = parent._children[0] if parent._children else None

        stack = [node]
        removed = 0
        while stack:
            current = stack.pop()
            stack.extend(current._children)
            self._nodes.pop(current.node_id, None)
            removed += 1
        _LOGGER.debug("Removed %d nodes under node %d", removed, parent.node_id)

    # ── Queries ──────────────────────────────────────────────────────────

    def get_root(self) -> GameNode:
        return self._root

    def get_node(self, node_id: int) -> GameNode | None:
        return self._nodes.get(node_id)

    def owns(self, node: GameNode) -> bool:
        """True if ``node`` is currently part of this tree."""
        return self._nodes.get(node.node_id) is node

    def nodes(self) -> list[GameNode]:
        return list(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def iter_main_line(self, start: GameNode | None = None) -> Iterator[GameNode]:
        """Yield ``start`` (default: root) and then each main child.

        Every call returns a fresh generator, so traversals never share
        a cursor.
        """
        node: GameNode | None = start if start is not None else self._root
        while node is not None:
            yield node
            node = node.main_child

    def get_main_line(self) -> list[GameNode]:
        return list(self.iter_main_line())

    def get_last_main_line_node(self) -> GameNode:
        node = self._root
        while node.main_child is not None:
            node = node.main_child
        return node

    def get_path(self, node: GameNode) -> list[GameNode]:
        """Nodes from the root down to ``node``, inclusive."""
        self._require_owned(node)
        path: list[GameNode] = []
        current: GameNode | None = node
        while current is not None:
            path.append(current)
            current = current.parent
        path.reverse()
        return path

    def to_move_array(self) -> list[str]:
        """UCI moves of the main line."""
        return [n.uci for n in self.iter_main_line() if n.uci is not None]

    # ── Headers and PGN ──────────────────────────────────────────────────

    def set_header(self, key: str, value: str) -> None:
        self._headers[key] = value

    def get_header(self, key: str) -> str | None:
        return self._headers.get(key)

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def to_pgn(self) -> str:
        """Export the tree as PGN, main line first, variations included."""
        game = chess.pgn.Game()
        if self._root.fen != STARTING_FEN:
            game.setup(chess.Board(self._root.fen))
        for key, value in self._headers.items():
            game.headers[key] = value

        stack: list[tuple[GameNode, chess.pgn.GameNode]] = [(self._root, game)]
        while stack:
            node, pgn_node = stack.pop()
            ordered = [node.main_child] if node.main_child is not None else []
            ordered.extend(node.variations)
            for child in ordered:
                pgn_child = pgn_node.add_variation(chess.Move.from_uci(child.uci))
                stack.append((child, pgn_child))

        return str(game)

    @classmethod
    def from_pgn(cls, pgn_text: str) -> GameTree:
        """Load the first game of a PGN string, variations included.

        Args:
            pgn_text: PGN text.

        Returns:
            A new GameTree whose main line follows the PGN main line.

        Raises:
            InvalidPositionError: If the PGN has no game or a bad FEN header.
        """
        game = chess.pgn.read_game(io.StringIO(pgn_text))
        if game is None:
            raise InvalidPositionError("", "no game found in PGN")
        for error in game.errors:
            _LOGGER.warning("PGN parse problem: %s", error)

        try:
            start_board = game.board()
        except ValueError as exc:
            raise InvalidPositionError(game.headers.get("FEN", ""), str(exc)) from exc

        tree = cls(start_board.fen())
        for key, value in game.headers.items():
            if key not in ("SetUp", "FEN"):
                tree.set_header(key, value)

        stack: list[tuple[chess.pgn.GameNode, GameNode]] = [(game, tree.get_root())]
        while stack:
            pgn_node, node = stack.pop()
            board = chess.Board(node.fen)
            for variation in pgn_node.variations:
                move = Move.from_chess(board, variation.move)
                child = tree.add_child(node, move, move.board)
                stack.append((variation, child))

        return tree

    # ── Internal ─────────────────────────────────────────────────────────

    def _require_owned(self, node: GameNode) -> None:
        if not self.owns(node):
            raise ForeignNodeError(f"{node!r} does not belong to this tree")

    def _checked_parent(self, node: GameNode) -> GameNode:
        parent = node.parent
        if parent is None:
            raise NotAChildError(f"{node!r} is the root and has no parent")
        if not any(c is node for c in parent._children):
            raise NotAChildError(f"{node!r} is not a child of {parent!r}")
        return parent
