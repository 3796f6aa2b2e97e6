"""The fluent iterator wrapper exposed to expressions."""

import functools
import itertools
from collections import deque

_MISSING = object()


class Lob:
    """A lazy, chainable stream over any iterable.

    Non-terminal operations return a new ``Lob`` and consume nothing until iterated; terminal
    operations consume the stream and return a plain value.
    """

    __slots__ = ("_iter",)

    def __init__(self, iterable):
        self._iter = iter(iterable)

    def __iter__(self):
        return self._iter

    def __next__(self):
        return next(self._iter)

    def __repr__(self):
        return "Lob(...)"

    # Selection

    def filter(self, predicate):
        return Lob(x for x in self._iter if predicate(x))

    def take(self, n):
        return Lob(itertools.islice(self._iter, n))

    def skip(self, n):
        return Lob(itertools.islice(self._iter, n, None))

    def take_while(self, predicate):
        return Lob(itertools.takewhile(predicate, self._iter))

    def drop_while(self, predicate):
        return Lob(itertools.dropwhile(predicate, self._iter))

    def unique(self):
        def gen(items):
            seen = set()
            for item in items:
                if item not in seen:
                    seen.add(item)
                    yield item

        return Lob(gen(self._iter))

    # Transformation

    def map(self, func):
        return Lob(func(x) for x in self._iter)

    def enumerate(self, start=0):
        return Lob(enumerate(self._iter, start))

    def zip(self, other):
        return Lob(zip(self._iter, other))

    def flatten(self):
        return Lob(itertools.chain.from_iterable(self._iter))

    # Grouping

    def chunk(self, n):
        if n <= 0:
            raise ValueError("chunk size must be positive")

        def gen(items):
            while True:
                batch = list(itertools.islice(items, n))
                if not batch:
                    return
                yield batch

        return Lob(gen(self._iter))

    def window(self, n):
        if n <= 0:
            raise ValueError("window size must be positive")

        def gen(items):
            buf = deque(maxlen=n)
            for item in items:
                buf.append(item)
                if len(buf) == n:
                    yield list(buf)

        return Lob(gen(self._iter))

    def group_by(self, key):
        """Group the whole stream by ``key``; yields ``(key, items)`` in first-seen order."""

        def gen(items):
            groups = {}
            for item in items:
                groups.setdefault(key(item), []).append(item)
            yield from groups.items()

        return Lob(gen(self._iter))

    # Joins

    def join_inner(self, other, left_key, right_key):
        """Pairs ``(left, right)`` for every right item whose key matches a left item's key."""

        def gen(items):
            index = {}
            for right in other:
                index.setdefault(right_key(right), []).append(right)
            for left in items:
                for right in index.get(left_key(left), ()):
                    yield (left, right)

        return Lob(gen(self._iter))

    def join_left(self, other, left_key, right_key):
        """Like ``join_inner`` but keeps unmatched left items paired with ``None``."""

        def gen(items):
            index = {}
            for right in other:
                index.setdefault(right_key(right), []).append(right)
            for left in items:
                matches = index.get(left_key(left))
                if not matches:
                    yield (left, None)
                    continue
                for right in matches:
                    yield (left, right)

        return Lob(gen(self._iter))

    # Terminal operations

    def collect(self, container=list):
        return container(self._iter)

    def to_list(self):
        return list(self._iter)

    def count(self):
        return sum(1 for _ in self._iter)

    def sum(self, start=0):
        return sum(self._iter, start)

    def min(self, key=None):
        return min(self._iter, key=key, default=None)

    def max(self, key=None):
        return max(self._iter, key=key, default=None)

    def first(self):
        return next(self._iter, None)

    def last(self):
        item = None
        for item in self._iter:
            pass
        return item

    def reduce(self, func):
        first = next(self._iter, _MISSING)
        if first is _MISSING:
            return None
        return functools.reduce(func, self._iter, first)

    def fold(self, init, func):
        return functools.reduce(func, self._iter, init)

    def any(self, predicate=bool):
        return any(predicate(x) for x in self._iter)

    def all(self, predicate=bool):
        return all(predicate(x) for x in self._iter)
