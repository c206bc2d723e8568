# Stdlib imports
import dataclasses
import decimal
import logging
import typing

# Local imports
from . import model

logger = logging.getLogger(__name__)

SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_size(size_bytes: int) -> str:
    """
    Format a byte count by dividing by 1024 until it drops below 1024 or the
    largest unit is reached. Values under 10 in a unit above bytes keep one
    decimal, a trailing ".0" is dropped.
    """
    size = decimal.Decimal(size_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1

    precision = decimal.Decimal("0.1") if size < 10 and unit_index > 0 else decimal.Decimal("1")
    rounded = size.quantize(precision, rounding=decimal.ROUND_HALF_UP)
    text = f"{rounded:f}"
    if text.endswith(".0"):
        text = text[:-2]
    return f"{text} {SIZE_UNITS[unit_index]}"


@dataclasses.dataclass(frozen=True)
class TreeRow:
    """One visible line of a rendered file tree."""

    node: model.FileNode
    depth: int
    expanded: bool

    @property
    def expandable(self) -> bool:
        return self.node.has_children


class ExpansionState:
    """
    Sparse map from node path to expanded flag, kept apart from the fetched tree.

    Only the root defaults to expanded. Nodes without children never change state.
    """

    def __init__(self):
        self._flags: dict[str, bool] = {}

    def is_expanded(self, node: model.FileNode, depth: int = 0) -> bool:
        if not node.has_children:
            return False
        return self._flags.get(node.path, depth == 0)

    def toggle(self, node: model.FileNode, depth: int = 0) -> bool:
        """Flip a directory's flag and return the new value."""
        if not node.has_children:
            return False
        expanded = not self.is_expanded(node, depth)
        self._flags[node.path] = expanded
        return expanded

    def expand_all(self, root: model.FileNode) -> None:
        for node in walk(root):
            if node.has_children:
                self._flags[node.path] = True

    def collapse_all(self, root: model.FileNode) -> None:
        for node in walk(root):
            if node.has_children:
                self._flags[node.path] = False

    def rows(self, root: model.FileNode) -> list[TreeRow]:
        """Merge the tree with the expansion flags into a flat list of visible rows."""
        rows: list[TreeRow] = []
        stack: list[tuple[model.FileNode, int]] = [(root, 0)]
        while stack:
            node, depth = stack.pop()
            expanded = self.is_expanded(node, depth)
            rows.append(TreeRow(node, depth, expanded))
            if expanded:
                stack.extend((child, depth + 1) for child in reversed(node.children))
        return rows


def walk(root: model.FileNode) -> typing.Iterator[model.FileNode]:
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        if node.children:
            stack.extend(reversed(node.children))


def find_node(root: model.FileNode, path: str) -> typing.Optional[model.FileNode]:
    return next((node for node in walk(root) if node.path == path), None)


class FileTreeView:
    """
    Holds one snapshot's tree and its expansion state for as long as it's mounted.

    A tree delivered after `unmount()` is dropped silently.
    """

    def __init__(self, snapshot_id: int):
        self.snapshot_id = snapshot_id
        self.root: typing.Optional[model.FileNode] = None
        self.expansion = ExpansionState()
        self.mounted = True

    def attach(self, root: model.FileNode) -> None:
        if not self.mounted:
            logger.debug("Ignoring file tree of snapshot %s, view unmounted", self.snapshot_id)
            return
        self.root = root

    async def load(self, loader: typing.Callable[[int], typing.Awaitable[model.FileNode]]) -> None:
        self.attach(await loader(self.snapshot_id))

    def unmount(self) -> None:
        self.mounted = False

    def toggle(self, path: str) -> bool:
        if self.root is None:
            return False
        node = find_node(self.root, path)
        if node is None:
            return False
        return self.expansion.toggle(node, 0 if node is self.root else 1)

    def rows(self) -> list[TreeRow]:
        if self.root is None:
            return []
        return self.expansion.rows(self.root)
