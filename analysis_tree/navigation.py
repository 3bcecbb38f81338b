"""TreeController: a cursor over a GameTree.

Holds the current node and board orientation for one analysis session.
Emits events via simple callbacks so a UI can subscribe; listeners run
only after the controller state is consistent.

Thread-safety: single owner, single thread. Evaluation results may be
attached to nodes at any time without involving the controller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from analysis_tree.errors import ForeignNodeError
from analysis_tree.tree import GameNode, GameTree

_LOGGER = logging.getLogger(__name__)

_ORIENTATIONS = ("white", "black")

NodeCallback = Callable[[GameNode], None]
TreeCallback = Callable[[GameTree], None]


@dataclass
class NavigationEvents:
    """Observable callbacks. Multiple handlers per event."""

    on_node_changed: list[NodeCallback] = field(default_factory=list)
    on_tree_changed: list[TreeCallback] = field(default_factory=list)


class TreeController:
    """Navigation state for one tree: current node, orientation, ply count."""

    __slots__ = ("_tree", "_current", "_orientation", "_ply_count", "events")

    def __init__(
        self,
        tree: GameTree,
        initial_node: GameNode | None = None,
        orientation: str = "white",
    ) -> None:
        _check_orientation(orientation)
        if initial_node is not None and not tree.owns(initial_node):
            raise ForeignNodeError(f"{initial_node!r} does not belong to this tree")
        self._tree = tree
        self._current = initial_node if initial_node is not None else tree.get_root()
        self._orientation = orientation
        self._ply_count = len(tree.get_main_line())
        self.events = NavigationEvents()

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def tree(self) -> GameTree:
        return self._tree

    @property
    def current_node(self) -> GameNode:
        return self._current

    @property
    def orientation(self) -> str:
        return self._orientation

    @property
    def ply_count(self) -> int:
        """Length of the main line when the tree was set or last refreshed."""
        return self._ply_count

    @property
    def current_index(self) -> int:
        """Index of the cursor in the main line, or -1 if off the main line."""
        for i, node in enumerate(self._tree.iter_main_line()):
            if node is self._current:
                return i
        return -1

    # ── Tree replacement ─────────────────────────────────────────────────

    def set_tree(self, tree: GameTree) -> None:
        """Switch to another tree and move the cursor to its root.

        Tree, cursor and ply count are all updated before any listener
        runs, so no listener sees the new tree with a stale node.
        """
        self._tree = tree
        self._current = tree.get_root()
        self._ply_count = len(tree.get_main_line())
        _LOGGER.debug("Loaded tree with %d nodes", len(tree))
        for callback in self.events.on_tree_changed:
            callback(tree)
        self._emit_node_changed()

    def refresh(self) -> None:
        """Recompute the ply count after the main line changed."""
        self._ply_count = len(self._tree.get_main_line())

    # ── Navigation ───────────────────────────────────────────────────────

    def go_to_node(self, node: GameNode) -> None:
        """Move the cursor to ``node``.

        Raises:
            ForeignNodeError: If ``node`` is not part of the active tree.
        """
        if not self._tree.owns(node):
            raise ForeignNodeError(f"{node!r} does not belong to the active tree")
        self._move_to(node)

    def go_to_next_node(self) -> None:
        """Follow the main child; stays put at a leaf."""
        if self._current.main_child is not None:
            self._move_to(self._current.main_child)

    def go_to_previous_node(self) -> None:
        """Step to the parent; stays put at the root."""
        parent = self._current.parent
        if parent is not None:
            self._move_to(parent)

    def go_to_root_node(self) -> None:
        self._move_to(self._tree.get_root())

    def set_current_index(self, index: int) -> None:
        """Jump to the ``index``-th node of the main line; ignores bad indexes."""
        main_line = self._tree.get_main_line()
        if 0 <= index < len(main_line):
            self._move_to(main_line[index])

    # ── Orientation ──────────────────────────────────────────────────────

    def set_orientation(self, orientation: str) -> None:
        _check_orientation(orientation)
        self._orientation = orientation

    def flip_orientation(self) -> None:
        self._orientation = "black" if self._orientation == "white" else "white"

    # ── Internal ─────────────────────────────────────────────────────────

    def _move_to(self, node: GameNode) -> None:
        if node is self._current:
            return
        self._current = node
        self._emit_node_changed()

    def _emit_node_changed(self) -> None:
        for callback in self.events.on_node_changed:
            callback(self._current)


def _check_orientation(orientation: str) -> None:
    if orientation not in _ORIENTATIONS:
        raise ValueError(f"Orientation must be 'white' or 'black', got {orientation!r}")
