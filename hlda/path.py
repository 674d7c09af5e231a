"""Document paths through the topic tree and candidate path enumeration."""

from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union


@dataclass(frozen=True)
class Existing:
    """Path step that reuses a node already in the tree"""

    node_id: int


@dataclass(frozen=True)
class Spawn:
    """Path step that creates a new node under the previous step"""


SPAWN = Spawn()

PathStep = Union[Existing, Spawn]


def enumerate_paths(tree, max_depth) -> List[Tuple[PathStep, ...]]:
    """
    Every path a document could take through the current tree

    Depth-first from the root: each node's children in creation order,
    followed by a branch to a new node padded with spawns to max_depth.
    """
    paths = []

    def extend(node_id, prefix):
        if len(prefix) == max_depth:
            paths.append(tuple(prefix))
            return
        for child_id in tree.node(node_id).children:
            extend(child_id, prefix + [Existing(child_id)])
        paths.append(tuple(prefix + [SPAWN] * (max_depth - len(prefix))))

    extend(tree.root_id, [Existing(tree.root_id)])
    return paths


def validate_steps(tree, steps: Sequence[PathStep], max_depth) -> None:
    """
    Raise ValueError unless steps describe a path the tree can hold

    A valid path has max_depth steps, starts at the root, names each
    existing node under the one before it and only spawns below a spawn.
    """
    if len(steps) != max_depth:
        raise ValueError(f"path needs {max_depth} steps, got {len(steps)}")
    if steps[0] != Existing(tree.root_id):
        raise ValueError("path must start at the root")

    parent_id = tree.root_id
    spawning = False
    for level, step in enumerate(steps[1:], start=1):
        if isinstance(step, Spawn):
            spawning = True
        elif not isinstance(step, Existing):
            raise ValueError(f"unknown path step {step!r} at level {level}")
        elif spawning:
            raise ValueError(f"existing node {step.node_id} named below a spawn at level {level}")
        elif step.node_id not in tree.node(parent_id).children:
            raise ValueError(f"node {step.node_id} is not a child of node {parent_id}")
        else:
            parent_id = step.node_id


def deepest_existing(steps: Sequence[PathStep]) -> Tuple[int, bool]:
    """Returns (id of the deepest real node, whether the path spawns below it)"""
    node_id = None
    for step in steps:
        if isinstance(step, Spawn):
            return node_id, True
        node_id = step.node_id
    return node_id, False


class TopicPath:
    def __init__(self, tree, max_depth):
        """
        The nodes one document passes through, root first

        Args:
            tree: TopicTree the path lives in
            max_depth: Number of levels a complete path has
        """
        self.tree = tree
        self.max_depth = max_depth
        self.node_ids: List[int] = [tree.root_id]

    @property
    def depth(self):
        return len(self.node_ids)

    def __len__(self):
        return len(self.node_ids)

    def __iter__(self):
        return iter(self.node_ids)

    def node_id(self, level) -> int:
        self._check_level(level)
        return self.node_ids[level]

    def node(self, level):
        return self.tree.node(self.node_id(level))

    def nodes(self):
        return [self.tree.node(node_id) for node_id in self.node_ids]

    def _check_level(self, level):
        if level < 0 or level >= len(self.node_ids):
            raise ValueError(f"level must be in [0, {len(self.node_ids)}), got {level}")

    def materialize(self, steps: Sequence[PathStep]) -> List[int]:
        """
        Point the path at the nodes named by steps, spawning where asked

        The first Spawn creates a child of the last real node and every
        deeper level is a fresh spawn under the one before it.
        """
        validate_steps(self.tree, steps, self.max_depth)

        node_ids = [self.tree.root_id]
        for step in steps[1:]:
            if isinstance(step, Spawn):
                node_ids.append(self.tree.spawn_child(node_ids[-1]).id)
            else:
                node_ids.append(step.node_id)

        self.node_ids = node_ids
        return list(node_ids)

    def add_document(self, document_index):
        for node in self.nodes():
            node.set_visited(document_index)

    def remove_document(self, document_index):
        for node in self.nodes():
            node.remove_visited(document_index)

    def add_word(self, document_index, word_id, level, count=1):
        self.node(level).add_word(document_index, word_id, count)

    def remove_word(self, document_index, word_id, level, count=1):
        self.node(level).remove_word(document_index, word_id, count)

    def __repr__(self):
        return f"TopicPath({self.node_ids})"
