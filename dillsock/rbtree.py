"""Red-black tree ordered by integer values, used for timer bookkeeping.

Items with equal values are kept in the tree side by side; iteration yields
them in no particular order relative to each other.
"""

from __future__ import annotations

from typing import Any, Iterator

__all__ = ["Node", "RBTree"]


class Node:
    """An item stored in an :class:`RBTree`."""

    __slots__ = ("val", "payload", "red", "left", "right", "up", "_tree")

    def __init__(self, val: int = 0, payload: Any = None):
        self.val = val
        self.payload = payload
        self.red = False
        self.left: Node = self
        self.right: Node = self
        self.up: Node = self
        self._tree: RBTree | None = None

    def __repr__(self) -> str:
        return f"Node(val={self.val!r}, payload={self.payload!r})"


class RBTree:
    """A red-black tree of :class:`Node` items keyed by ``val``."""

    def __init__(self) -> None:
        nil = Node()
        nil.left = nil.right = nil.up = nil
        root = Node()
        root.left = root.right = root.up = nil
        self._nil = nil
        self._root = root
        self._size = 0

    def _lrotate(self, x: Node) -> None:
        nil = self._nil
        y = x.right
        x.right = y.left
        if y.left is not nil:
            y.left.up = x
        y.up = x.up
        if x is x.up.left:
            x.up.left = y
        else:
            x.up.right = y
        y.left = x
        x.up = y

    def _rrotate(self, y: Node) -> None:
        nil = self._nil
        x = y.left
        y.left = x.right
        if x.right is not nil:
            x.right.up = y
        x.up = y.up
        if y is y.up.left:
            y.up.left = x
        else:
            y.up.right = x
        x.right = y
        y.up = x

    def _insert_leaf(self, z: Node) -> None:
        nil = self._nil
        z.left = z.right = nil
        y = self._root
        x = self._root.left
        while x is not nil:
            y = x
            x = x.left if x.val > z.val else x.right
        z.up = y
        if y is self._root or y.val > z.val:
            y.left = z
        else:
            y.right = z

    def insert(self, val: int, payload: Any = None) -> Node:
        """Insert a new item with value ``val`` and return its node."""
        node = Node(val, payload)
        node._tree = self
        self._insert_leaf(node)
        node.red = True
        x = node
        while x.up.red:
            if x.up is x.up.up.left:
                y = x.up.up.right
                if y.red:
                    x.up.red = False
                    y.red = False
                    x.up.up.red = True
                    x = x.up.up
                else:
                    if x is x.up.right:
                        x = x.up
                        self._lrotate(x)
                    x.up.red = False
                    x.up.up.red = True
                    self._rrotate(x.up.up)
            else:
                y = x.up.up.left
                if y.red:
                    x.up.red = False
                    y.red = False
                    x.up.up.red = True
                    x = x.up.up
                else:
                    if x is x.up.left:
                        x = x.up
                        self._rrotate(x)
                    x.up.red = False
                    x.up.up.red = True
                    self._lrotate(x.up.up)
        self._root.left.red = False
        self._size += 1
        return node

    def is_empty(self) -> bool:
        """Return True if there are no items in the tree."""
        return self._root.left is self._nil

    def first(self) -> Node | None:
        """Return the item with the lowest value, or None if the tree is empty."""
        nil = self._nil
        x = self._root.left
        if x is nil:
            return None
        while x.left is not nil:
            x = x.left
        return x

    def _successor(self, x: Node) -> Node:
        nil = self._nil
        y = x.right
        if y is not nil:
            while y.left is not nil:
                y = y.left
            return y
        y = x.up
        while x is y.right:
            x = y
            y = y.up
        if y is self._root:
            return nil
        return y

    def next(self, node: Node) -> Node | None:
        """Return the item following ``node``, or None if it is the last one."""
        it = self._successor(node)
        return None if it is self._nil else it

    def _fixup(self, x: Node) -> None:
        root = self._root.left
        while not x.red and x is not root:
            if x is x.up.left:
                w = x.up.right
                if w.red:
                    w.red = False
                    x.up.red = True
                    self._lrotate(x.up)
                    w = x.up.right
                if not w.right.red and not w.left.red:
                    w.red = True
                    x = x.up
                else:
                    if not w.right.red:
                        w.left.red = False
                        w.red = True
                        self._rrotate(w)
                        w = x.up.right
                    w.red = x.up.red
                    x.up.red = False
                    w.right.red = False
                    self._lrotate(x.up)
                    x = root
            else:
                w = x.up.left
                if w.red:
                    w.red = False
                    x.up.red = True
                    self._rrotate(x.up)
                    w = x.up.left
                if not w.right.red and not w.left.red:
                    w.red = True
                    x = x.up
                else:
                    if not w.left.red:
                        w.right.red = False
                        w.red = True
                        self._lrotate(w)
                        w = x.up.left
                    w.red = x.up.red
                    x.up.red = False
                    w.left.red = False
                    self._rrotate(x.up)
                    x = root
        x.red = False

    def erase(self, node: Node) -> None:
        """Remove ``node`` from the tree."""
        if node._tree is not self:
            raise ValueError("node is not in this tree")
        z = node
        nil = self._nil
        root = self._root
        y = z if (z.left is nil or z.right is nil) else self._successor(z)
        x = y.right if y.left is nil else y.left
        x.up = y.up
        if x.up is root:
            root.left = x
        elif y is y.up.left:
            y.up.left = x
        else:
            y.up.right = x
        if y is not z:
            if not y.red:
                self._fixup(x)
            y.left = z.left
            y.right = z.right
            y.up = z.up
            y.red = z.red
            z.left.up = y
            z.right.up = y
            if z is z.up.left:
                z.up.left = y
            else:
                z.up.right = y
        elif not y.red:
            self._fixup(x)
        node._tree = None
        self._size -= 1

    def __iter__(self) -> Iterator[Node]:
        node = self.first()
        while node is not None:
            following = self.next(node)
            yield node
            node = following

    def __len__(self) -> int:
        return self._size