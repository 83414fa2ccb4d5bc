"""Utilities for working with descriptors."""

from ..miniscript import Node


class TreeNode:
    """A node in a Taproot tree"""

    def __init__(self, left_child, right_child):
        """Instanciate a Taproot tree node with its two child. Each may be a leaf node."""
        assert all(isinstance(c, (TreeNode, Node)) for c in (left_child, right_child))
        self.left_child = left_child
        self.right_child = right_child

    def __repr__(self):
        return f"{{{self.left_child},{self.right_child}}}"

    def __eq__(self, other):
        return isinstance(other, TreeNode) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    def leaves(self):
        """Get the list of all the leaves, from left to right."""
        if isinstance(self.left_child, Node) and isinstance(self.right_child, Node):
            return [self.left_child, self.right_child]
        if isinstance(self.left_child, Node):
            return [self.left_child] + self.right_child.leaves()
        if isinstance(self.right_child, Node):
            return self.left_child.leaves() + [self.right_child]
        return self.left_child.leaves() + self.right_child.leaves()

    @property
    def keys(self):
        return [k for leaf in self.leaves() for k in leaf.keys]

    def translate_keys(self, func):
        left_child = self.left_child.translate_keys(func)
        right_child = self.right_child.translate_keys(func)
        return TreeNode(left_child, right_child)
