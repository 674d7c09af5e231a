"""Registries and small containers shared by the samplers."""

from collections import Counter
from typing import Dict, Hashable, Iterable, List, Set


class IdentifierObjectMapper:
    """
    Two-way mapping between objects and stable integer ids

    Used as the vocabulary (word <-> id) and as the topic node registry.
    Ids are handed out in increasing order and never reused after a delete.
    """

    def __init__(self):
        self._objects: Dict[int, Hashable] = {}
        self._indexes: Dict[Hashable, int] = {}
        self._next_index = 0

    def add(self, obj) -> int:
        """Register obj and return its id; an existing object keeps its id"""
        if obj in self._indexes:
            return self._indexes[obj]
        index = self._next_index
        self._next_index += 1
        self._objects[index] = obj
        self._indexes[obj] = index
        return index

    def index_of(self, obj) -> int:
        return self._indexes.get(obj, -1)

    def object_at(self, index: int):
        return self._objects.get(index)

    def contains(self, obj) -> bool:
        return obj in self._indexes

    def contains_index(self, index: int) -> bool:
        return index in self._objects

    def indexes(self) -> Set[int]:
        return set(self._objects)

    def delete_index(self, index: int):
        obj = self._objects.pop(index, None)
        if obj is not None:
            del self._indexes[obj]

    def __len__(self):
        return len(self._objects)

    def __iter__(self):
        return iter(self._objects.items())

    def __eq__(self, other):
        if not isinstance(other, IdentifierObjectMapper):
            return NotImplemented
        return self._objects == other._objects


class BoundedPriorityQueue:
    """Keeps the max_size highest priority elements, highest first"""

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self._entries: List[tuple] = []

    def add(self, priority, element):
        # Newer elements win ties, so they go in front of equal priorities
        position = 0
        while position < len(self._entries) and self._entries[position][0] > priority:
            position += 1
        if position >= self.max_size:
            return
        self._entries.insert(position, (priority, element))
        del self._entries[self.max_size:]

    def elements(self) -> List:
        return [element for _, element in self._entries]

    def priorities(self) -> List:
        return [priority for priority, _ in self._entries]

    def __len__(self):
        return len(self._entries)


UNASSIGNED = -1


class SparseDocument:
    """
    A document as word-type counts plus one level assignment per word-type

    Args:
        vocabulary: IdentifierObjectMapper shared by every document
    """

    def __init__(self, vocabulary: IdentifierObjectMapper):
        self.vocabulary = vocabulary
        self.word_counts: Dict[int, int] = {}
        self.levels: Dict[int, int] = {}

    def read_document(self, words: Iterable[str], add_unknown: bool = True):
        for word in words:
            if add_unknown:
                word_id = self.vocabulary.add(word)
            else:
                word_id = self.vocabulary.index_of(word)
                if word_id == -1:
                    continue
            self.word_counts[word_id] = self.word_counts.get(word_id, 0) + 1
            self.levels.setdefault(word_id, UNASSIGNED)

    @property
    def word_ids(self) -> List[int]:
        return list(self.word_counts)

    @property
    def total_words(self) -> int:
        return sum(self.word_counts.values())

    def raw_words(self) -> List[str]:
        return [self.vocabulary.object_at(word_id) for word_id in self.word_counts]

    def word_count(self, word_id: int) -> int:
        return self.word_counts.get(word_id, 0)

    def level_for_word(self, word_id: int) -> int:
        return self.levels.get(word_id, UNASSIGNED)

    def set_level_for_word(self, word_id: int, level: int):
        if word_id in self.levels:
            self.levels[word_id] = level

    def assigned_levels(self) -> Set[int]:
        return set(self.levels.values())

    def level_counts(self) -> Dict[int, int]:
        """Word occurrences per level, unassigned words counted under -1"""
        counts = Counter()
        for word_id, level in self.levels.items():
            counts[level] += self.word_counts[word_id]
        return dict(counts)

    def word_level_counts(self, word_id: int) -> Dict[int, int]:
        if word_id not in self.word_counts:
            return {}
        return {self.levels[word_id]: self.word_counts[word_id]}

    def words_at_level(self, level: int) -> Dict[int, int]:
        return {
            word_id: self.word_counts[word_id]
            for word_id, word_level in self.levels.items()
            if word_level == level
        }

    def __len__(self):
        return len(self.word_counts)
