"""
===============================================================================
B-TREE BASELINE IMPLEMENTATION
===============================================================================
This module defines a simple B-Tree over (key, value) entries, used as the
comparison-based baseline the Recursive Model Index is benchmarked against.

It currently supports:
    • Bulk build from entries (sorted internally, stable on duplicate keys)
    • find(key) returning the first matching entry or None
    • Approximate memory usage reporting

The tree is built bottom-up, creating leaf nodes and then grouping them into
internal nodes of configurable order (page size). Separator keys are the
first key of each child, so a lookup walks down with bisect_right and then
bisects the leaf; runs of duplicate keys may straddle leaves, which is why
the leaf search steps back to earlier leaves.

Usage:
    from learned_rmi.indexes.btree import BTree

    tree = BTree(order=64)
    tree.build([(5, "a"), (1, "b")])
    print(tree.find(5))
===============================================================================
"""

import bisect
from typing import Iterable, List, Optional, Tuple

from learned_rmi.indexes.overflow import Entry


class BTreeNode:
    """Single node in a B-Tree."""

    def __init__(self, leaf: bool = True):
        self.keys = []        # Sorted list of keys (separators for internal nodes)
        self.values = []      # Payloads, leaves only
        self.children = []    # List of child BTreeNodes
        self.leaf = leaf      # True if leaf node
        self.leaf_id = 0      # Position in the leaf level, leaves only


class BTree:
    """
    Simple read-optimized B-Tree baseline.
    Bulk-load only; rebuild to absorb new entries.
    """

    def __init__(self, order: int = 128):
        """
        Args:
            order: Maximum number of children per node (typical 64–256)
        """
        if order < 3:
            raise ValueError("B-Tree order must be at least 3")
        self.root = BTreeNode(leaf=True)
        self.order = order
        self.size = 0
        self._leaves: List[BTreeNode] = []

    # ----------------------------------------------------------------------
    # Build
    # ----------------------------------------------------------------------
    def build(self, entries: Iterable[Tuple]):
        """Bulk-load the tree from (key, value) pairs in any order."""
        ordered = sorted((Entry(k, v) for k, v in entries), key=lambda e: e.key)
        self.size = len(ordered)
        self.root = BTreeNode(leaf=True)
        self._leaves = [self.root]
        if self.size == 0:
            return

        # Create leaf level
        leaf_nodes = []
        keys_per_leaf = self.order - 1
        for i in range(0, self.size, keys_per_leaf):
            node = BTreeNode(leaf=True)
            chunk = ordered[i:i + keys_per_leaf]
            node.keys = [e.key for e in chunk]
            node.values = [e.value for e in chunk]
            node.leaf_id = len(leaf_nodes)
            leaf_nodes.append(node)
        self._leaves = leaf_nodes

        # Build internal levels
        current = leaf_nodes
        while len(current) > 1:
            next_level = []
            for i in range(0, len(current), self.order):
                parent = BTreeNode(leaf=False)
                group = current[i:i + self.order]
                for j, child in enumerate(group):
                    parent.children.append(child)
                    if j > 0:
                        parent.keys.append(self._first_key(child))
                next_level.append(parent)
            current = next_level

        self.root = current[0]

    @staticmethod
    def _first_key(node: BTreeNode):
        while not node.leaf:
            node = node.children[0]
        return node.keys[0]

    # ----------------------------------------------------------------------
    # Search
    # ----------------------------------------------------------------------
    def find(self, key) -> Optional[Entry]:
        """First entry (by sorted position) with a matching key, or None."""
        if self.size == 0:
            return None
        leaf_id = self._leaf_index(key)

        # Duplicates of `key` may continue leftwards into earlier leaves
        found = None
        while leaf_id >= 0:
            leaf = self._leaves[leaf_id]
            idx = bisect.bisect_left(leaf.keys, key)
            if idx < len(leaf.keys) and leaf.keys[idx] == key:
                found = Entry(leaf.keys[idx], leaf.values[idx])
                if idx > 0:
                    break
                leaf_id -= 1
            else:
                break
        return found

    def search(self, key) -> bool:
        return self.find(key) is not None

    def _leaf_index(self, key) -> int:
        node = self.root
        while not node.leaf:
            node = node.children[bisect.bisect_right(node.keys, key)]
        return node.leaf_id

    # ----------------------------------------------------------------------
    # Utilities
    # ----------------------------------------------------------------------
    def get_memory_usage(self) -> int:
        """Approximate memory usage in bytes."""
        return self._mem_recursive(self.root)

    def _mem_recursive(self, node: BTreeNode) -> int:
        mem = len(node.keys) * 8 + len(node.values) * 8 + len(node.children) * 8 + 16
        if not node.leaf:
            for child in node.children:
                mem += self._mem_recursive(child)
        return mem
