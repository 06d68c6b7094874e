"""
Phylogenetic trees.

A small rooted tree model with a Newick string parser, used to weight or
project ordinations by shared evolutionary history. Trees may contain
polytomies; branch lengths default to zero when absent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Sequence

import numpy as np
import pandas as pd

from morphospace.errors import NewickParseError

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(eq=False)
class Node:
    """A tree node. Tips have no children."""

    name: str | None = None
    length: float = 0.0
    children: list[Node] = field(default_factory=list)

    @property
    def is_tip(self) -> bool:
        return not self.children

    def preorder(self) -> Iterator[Node]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def tips(self) -> list[Node]:
        return [node for node in self.preorder() if node.is_tip]

    def __repr__(self) -> str:
        kind = "tip" if self.is_tip else f"{len(self.children)} children"
        return f"Node({self.name!r}, length={self.length}, {kind})"


class Tree:
    """A rooted phylogenetic tree with uniquely labelled tips."""

    def __init__(self, root: Node):
        self.root = root
        labels = self.tip_labels
        if any(label is None or label == "" for label in labels):
            raise NewickParseError("Every tip needs a label")
        duplicated = sorted({label for label in labels if labels.count(label) > 1})
        if duplicated:
            raise NewickParseError(f"Duplicate tip labels: {', '.join(duplicated)}")

    @classmethod
    def from_newick(cls, text: str) -> Tree:
        return parse_newick(text)

    def nodes(self) -> list[Node]:
        """All nodes in preorder, root first."""
        return list(self.root.preorder())

    def tips(self) -> list[Node]:
        return self.root.tips()

    @property
    def tip_labels(self) -> list[str]:
        return [tip.name for tip in self.tips()]

    @property
    def n_tips(self) -> int:
        return len(self.tips())

    @property
    def is_bifurcating(self) -> bool:
        return all(len(node.children) in (0, 2) for node in self.nodes())

    def _paths(self) -> dict[str, list[Node]]:
        """Root-to-tip node paths, excluding the root itself."""
        paths = {}

        def walk(node: Node, path: list[Node]) -> None:
            if node.is_tip:
                paths[node.name] = path
                return
            for child in node.children:
                walk(child, path + [child])

        walk(self.root, [])
        return paths

    def depth(self, label: str) -> float:
        """Root-to-tip path length."""
        paths = self._paths()
        if label not in paths:
            raise KeyError(f"Unknown tip: {label}")
        return float(sum(node.length for node in paths[label]))

    def vcv(self, order: Sequence[str] | None = None) -> pd.DataFrame:
        """Phylogenetic covariance matrix under Brownian motion.

        Entry (i, j) is the length of the path from the root to the most
        recent common ancestor of tips i and j; the diagonal holds the
        root-to-tip depths.

        Args:
            order: Tip order for rows and columns; defaults to tree order

        Returns:
            Square DataFrame labelled by tip
        """
        paths = self._paths()
        labels = list(order) if order is not None else self.tip_labels
        unknown = [label for label in labels if label not in paths]
        if unknown:
            raise KeyError(f"Unknown tips: {', '.join(map(str, unknown))}")

        n = len(labels)
        cov = np.zeros((n, n))
        for i in range(n):
            path_i = paths[labels[i]]
            for j in range(i, n):
                path_j = paths[labels[j]]
                shared = 0.0
                for a, b in zip(path_i, path_j):
                    if a is not b:
                        break
                    shared += a.length
                cov[i, j] = cov[j, i] = shared
        return pd.DataFrame(cov, index=labels, columns=labels)

    def prune(self, keep: Iterable[str]) -> Tree:
        """Return a copy holding only the ``keep`` tips.

        Nodes left with a single child are collapsed into it, adding their
        branch lengths together.
        """
        keep = set(keep)
        unknown = keep - set(self.tip_labels)
        if unknown:
            raise KeyError(f"Unknown tips: {', '.join(sorted(unknown))}")
        if not keep:
            raise ValueError("Cannot prune every tip from a tree")

        def copy(node: Node) -> Node | None:
            if node.is_tip:
                return Node(node.name, node.length) if node.name in keep else None
            children = [c for c in (copy(child) for child in node.children) if c is not None]
            if not children:
                return None
            if len(children) == 1:
                only = children[0]
                only.length += node.length
                return only
            return Node(node.name, node.length, children)

        return Tree(copy(self.root))

    def to_newick(self) -> str:
        def render(node: Node) -> str:
            text = ""
            if node.children:
                text = "(" + ",".join(render(child) for child in node.children) + ")"
            if node.name:
                text += _quote(node.name)
            if node is not self.root or node.length:
                text += f":{node.length:g}"
            return text

        return render(self.root) + ";"

    def __repr__(self) -> str:
        return f"Tree(n_tips={self.n_tips})"


def _quote(name: str) -> str:
    if any(ch in name for ch in " ()[]':;,"):
        return "'" + name.replace("'", "''") + "'"
    return name


class _NewickParser:
    """Recursive-descent parser over a single Newick string."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> NewickParseError:
        return NewickParseError(message, self.pos)

    def peek(self) -> str:
        self.skip()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip(self) -> None:
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch.isspace():
                self.pos += 1
            elif ch == "[":
                end = self.text.find("]", self.pos)
                if end < 0:
                    raise self.error("Unterminated comment")
                self.pos = end + 1
            else:
                break

    def parse(self) -> Node:
        node = self.subtree()
        if self.peek() != ";":
            raise self.error("Expected ';' at end of tree")
        self.pos += 1
        if self.peek():
            raise self.error("Unexpected text after ';'")
        return node

    def subtree(self) -> Node:
        node = Node()
        if self.peek() == "(":
            self.pos += 1
            node.children.append(self.subtree())
            while self.peek() == ",":
                self.pos += 1
                node.children.append(self.subtree())
            if self.peek() != ")":
                raise self.error("Expected ',' or ')'")
            self.pos += 1
        node.name = self.label()
        if self.peek() == ":":
            self.pos += 1
            node.length = self.number()
        return node

    def label(self) -> str | None:
        ch = self.peek()
        if ch == "'":
            self.pos += 1
            chars = []
            while True:
                end = self.text.find("'", self.pos)
                if end < 0:
                    raise self.error("Unterminated quoted label")
                chars.append(self.text[self.pos:end])
                self.pos = end + 1
                if self.text.startswith("'", self.pos):
                    chars.append("'")
                    self.pos += 1
                else:
                    break
            return "".join(chars)

        start = self.pos
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in "(),:;[" or ch.isspace():
                break
            self.pos += 1
        name = self.text[start:self.pos]
        return name or None

    def number(self) -> float:
        self.skip()
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] in "0123456789.eE+-":
            self.pos += 1
        token = self.text[start:self.pos]
        try:
            return float(token)
        except ValueError:
            self.pos = start
            raise self.error(f"Invalid branch length {token!r}") from None


def parse_newick(text: str) -> Tree:
    """Parse a Newick string into a :class:`Tree`.

    Underscores in unquoted labels are kept as-is. Square-bracket comments
    are ignored.

    Raises:
        NewickParseError: If the text is not valid Newick
    """
    text = text.strip()
    if not text:
        raise NewickParseError("Empty Newick string")
    return Tree(_NewickParser(text).parse())


def phylogenetic_vcv(tree: Tree, labels: Sequence[str]) -> NDArray[np.floating]:
    """Covariance matrix for ``labels``, pruning any extra tips first.

    Raises:
        ValueError: If a label has no matching tip
    """
    tips = set(tree.tip_labels)
    missing = [label for label in labels if label not in tips]
    if missing:
        raise ValueError(f"Specimens missing from tree: {', '.join(missing)}")
    if len(labels) < tree.n_tips:
        tree = tree.prune(labels)
    return tree.vcv(order=labels).to_numpy()
