import hashlib
import logging
import os
import re
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, Hashable, Iterable, List, NamedTuple, Optional, Union

group_logger = logging.getLogger("sequencer.group")
terminal_logger = logging.getLogger("sequencer.terminal")


class Signal(IntEnum):
    """Continuation signal returned by visitors. STOP is falsy, CONTINUE is truthy."""
    STOP = 0
    CONTINUE = 1


class SequenceError(Exception):
    """Base class for errors raised by the sequence engine"""


class NotRestartableError(SequenceError, ValueError):
    """A one-shot sequence was given where a restartable one is required"""


def _forward(visit, item) -> Signal:
    return Signal.CONTINUE if visit(item) else Signal.STOP


# --------- textual projection ----------

class TextKind(str, Enum):
    """How an element is turned into text for pattern matching"""
    TEXT = "text"            # already a str
    RENDERED = "rendered"    # type defines its own __str__
    FORMATTED = "formatted"  # generic format()


def text_kind(value: Any) -> TextKind:
    if isinstance(value, str):
        return TextKind.TEXT
    if type(value).__str__ is not object.__str__:
        return TextKind.RENDERED
    return TextKind.FORMATTED


def to_text(value: Any) -> str:
    """Return the textual projection of an element"""
    kind = text_kind(value)
    if kind is TextKind.TEXT:
        return value
    if kind is TextKind.RENDERED:
        return str(value)
    return format(value)


# --------- per-traversal state ----------

class CountTable:
    """Occurrence counts for one traversal of the duplicates combinator"""
    def __init__(self):
        self._counts: Dict[Hashable, int] = {}

    def add(self, value) -> int:
        count = self._counts.get(value, 0) + 1
        self._counts[value] = count
        return count

    def __len__(self):
        return len(self._counts)


class SeenSet:
    """Values already yielded by one traversal of the deduplicate combinator"""
    def __init__(self):
        self._seen = set()

    def add(self, value) -> bool:
        """Record value; return True on its first sighting"""
        if value in self._seen:
            return False
        self._seen.add(value)
        return True

    def __len__(self):
        return len(self._seen)


class GroupAccumulator:
    """
    Maps a computed key to the elements that produced it, in arrival order.
    The order in which groups are enumerated carries no meaning.
    """
    def __init__(self):
        self._groups: Dict[Hashable, List[Any]] = {}

    def append(self, key, value):
        group = self._groups.get(key)
        if group is None:
            self._groups[key] = [value]
        else:
            group.append(value)

    def groups(self):
        return self._groups.values()

    def __len__(self):
        return len(self._groups)


# Seed shared by every HashState in this process; digests are not comparable across runs.
_PROCESS_SEED = os.urandom(16)
_MASK64 = (1 << 64) - 1
_SCALAR_TYPES = (bool, int, float, complex, str, bytes, type(None))


class HashState:
    """
    Resettable 64-bit hashing accumulator.

    Built-in scalars and tuples are folded in by type and repr; other
    objects fall back to their Python hash, so equal values of the same
    type give equal digests within one process. This is a fingerprint, not a
    content address: collisions are possible and are not detected, and
    digests must never be persisted or compared between processes.
    """
    def __init__(self, seed: Optional[bytes] = None):
        self._seed = seed if seed is not None else _PROCESS_SEED
        self.reset()

    def reset(self):
        self._hash = hashlib.blake2b(digest_size=8, key=self._seed)

    def write(self, value):
        """Fold a value in, tagged with its type"""
        kind = type(value)
        self._hash.update(kind.__qualname__.encode() + b"\x00")
        if kind is tuple:
            self._hash.update(len(value).to_bytes(8, "little"))
            for item in value:
                self.write(item)
        elif kind in _SCALAR_TYPES:
            if kind is float and value == 0.0:
                value = 0.0  # -0.0 == 0.0
            data = (hex(value) if kind is int else repr(value)).encode()
            self._hash.update(len(data).to_bytes(8, "little"))
            self._hash.update(data)
        else:
            self._hash.update((hash(value) & _MASK64).to_bytes(8, "little"))

    def sum64(self) -> int:
        return int.from_bytes(self._hash.digest(), "little")


class AggregateResult(NamedTuple):
    """Outcome of Sequence.aggregate(): the total, or the zero value and the first error"""
    value: Any
    error: Optional[BaseException]

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self):
        if self.error is not None:
            raise self.error
        return self.value


class Sequence:
    """
    A lazy, single-pass producer of elements.

    A sequence wraps a producer: a callable that takes a visitor and calls it
    once per element, in order, until the source is exhausted or the visitor
    returns a falsy value. Combinators return new sequences whose producers
    drive the wrapped one; nothing runs until drive() or a terminal is called.

    `restartable` says whether the ultimate source can be driven again from
    the start. It is inherited by every sequence derived from this one.
    """
    def __init__(self, producer: Callable[[Callable[[Any], Any]], Any], restartable: bool = True):
        self._producer = producer
        self.restartable = restartable

    # --------- sources ----------
    @classmethod
    def of(cls, iterable: Iterable) -> "Sequence":
        """Wrap an iterable. One-shot iterators (generators, files) are not restartable."""
        def produce(visit):
            for item in iterable:
                if not visit(item):
                    return Signal.STOP
            return Signal.CONTINUE
        return cls(produce, restartable=iter(iterable) is not iterable)

    @classmethod
    def empty(cls) -> "Sequence":
        return cls(lambda visit: Signal.CONTINUE)

    @classmethod
    def from_producer(cls, producer, restartable: bool = False) -> "Sequence":
        """Wrap a hand-written producer; it is assumed one-shot unless told otherwise"""
        return cls(producer, restartable=restartable)

    # --------- driving ----------
    def drive(self, visitor: Callable[[Any], Any]) -> Signal:
        """
        Call visitor for each element in order. Returns Signal.STOP if the
        visitor asked to stop, Signal.CONTINUE if the source ran out.

        Once the visitor stops, it is never called again for this drive even
        if a hand-written producer keeps going.
        """
        stopped = False

        def guarded(item):
            nonlocal stopped
            if stopped:
                return Signal.STOP
            if visitor(item):
                return Signal.CONTINUE
            stopped = True
            return Signal.STOP

        self._producer(guarded)
        return Signal.STOP if stopped else Signal.CONTINUE

    # --------- filtering combinators ----------
    def filter(self, predicate: Callable[[Any], bool]) -> "Sequence":
        def produce(visit):
            def step(item):
                if predicate(item):
                    return _forward(visit, item)
                return Signal.CONTINUE
            return self.drive(step)
        return self._derive(produce)

    def remove(self, exclude: Union["Sequence", Iterable]) -> "Sequence":
        """
        Drop every element equal to some element of `exclude`.

        `exclude` is driven again for each element of this sequence, so it
        must be restartable; a one-shot exclude raises NotRestartableError.
        """
        exclude = as_sequence(exclude)
        if not exclude.restartable:
            raise NotRestartableError("remove() needs a restartable exclude sequence")

        def produce(visit):
            def step(item):
                if exclude.contains(item):
                    return Signal.CONTINUE
                return _forward(visit, item)
            return self.drive(step)
        return self._derive(produce)

    def match(self, pattern: Union[str, re.Pattern], text: Optional[Callable[[Any], str]] = None) -> "Sequence":
        """Keep elements whose text contains a match for the regular expression"""
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        project = text or to_text

        def produce(visit):
            def step(item):
                if compiled.search(project(item)) is not None:
                    return _forward(visit, item)
                return Signal.CONTINUE
            return self.drive(step)
        return self._derive(produce)

    def match_text(self, literal: str, text: Optional[Callable[[Any], str]] = None) -> "Sequence":
        """Keep elements whose text equals literal exactly"""
        project = text or to_text

        def produce(visit):
            def step(item):
                if project(item) == literal:
                    return _forward(visit, item)
                return Signal.CONTINUE
            return self.drive(step)
        return self._derive(produce)

    # --------- set / counting combinators ----------
    def duplicates(self) -> "Sequence":
        """Yield a value once, at its second sighting"""
        def produce(visit):
            counts = CountTable()

            def step(item):
                if counts.add(item) == 2:
                    return _forward(visit, item)
                return Signal.CONTINUE
            return self.drive(step)
        return self._derive(produce)

    def deduplicate(self) -> "Sequence":
        """Yield each distinct value at its first sighting"""
        def produce(visit):
            seen = SeenSet()

            def step(item):
                if seen.add(item):
                    return _forward(visit, item)
                return Signal.CONTINUE
            return self.drive(step)
        return self._derive(produce)

    def hashed(self) -> "PairSequence":
        """Pair each element with its 64-bit in-process digest: (digest, element)"""
        def produce(visit):
            state = HashState()

            def step(item):
                state.reset()
                state.write(item)
                return Signal.CONTINUE if visit(state.sum64(), item) else Signal.STOP
            return self.drive(step)
        return PairSequence(produce, restartable=self.restartable)

    # --------- grouping ----------
    def group_by(self, key: Callable[[Any], Hashable]) -> "Sequence":
        """
        Yield lists of elements sharing key(element).

        Not incremental: each drive first drains the whole source, so the
        source must be finite. Elements keep their order within a group;
        the order of groups is unspecified.
        """
        def produce(visit):
            accumulator = GroupAccumulator()

            def collect(item):
                accumulator.append(key(item), item)
                return Signal.CONTINUE
            self.drive(collect)
            group_logger.debug(f"Collected {len(accumulator)} groups")

            for group in accumulator.groups():
                if not visit(group):
                    return Signal.STOP
            return Signal.CONTINUE
        return self._derive(produce)

    # --------- transform combinators ----------
    def replace(self, fn: Callable[[Any], Any]) -> "Sequence":
        return self._mapped(fn)

    def replace_table(self, table: Dict[Hashable, Any]) -> "Sequence":
        """Swap elements found as keys in table for their values; pass the rest through"""
        def substitute(item):
            return table[item] if item in table else item
        return self._mapped(substitute)

    def convert(self, fn: Callable[[Any], Any]) -> "Sequence":
        return self._mapped(fn)

    def erase(self) -> "Sequence":
        """Forward every element unchanged as a plain object, dropping any element typing"""
        return self._mapped(_as_object)

    # --------- terminals ----------
    def to_list(self) -> List[Any]:
        items = []

        def append(item):
            items.append(item)
            return Signal.CONTINUE
        self.drive(append)
        return items

    def first(self, default=None):
        """Return the first element, or default if empty"""
        found = [default]

        def take(item):
            found[0] = item
            return Signal.STOP
        self.drive(take)
        return found[0]

    def contains(self, value) -> bool:
        found = False

        def look(item):
            nonlocal found
            if item == value:
                found = True
                return Signal.STOP
            return Signal.CONTINUE
        self.drive(look)
        return found

    def count(self) -> int:
        total = 0

        def tally(_):
            nonlocal total
            total += 1
            return Signal.CONTINUE
        self.drive(tally)
        return total

    def is_empty(self) -> bool:
        seen = False

        def mark(_):
            nonlocal seen
            seen = True
            return Signal.STOP
        self.drive(mark)
        return not seen

    def sum(self, start=None):
        """
        Sum all elements in ascending order.

        The elements are collected and sorted first, so the result does not
        depend on arrival order. Without `start` the smallest element seeds
        the total, so any type supporting + works; an empty sequence sums to 0.
        """
        items = self.to_list()
        items.sort()
        terminal_logger.debug(f"Summing {len(items)} elements")
        if start is None:
            if not items:
                return 0
            total, rest = items[0], items[1:]
        else:
            total, rest = start, items
        for item in rest:
            total = total + item
        return total

    def aggregate(self, fn: Callable[[Any], Any], zero=0) -> AggregateResult:
        """
        Sum fn(element) over the sequence, stopping at the first exception.

        On failure the result carries `zero` and the exception; a partial
        total is never returned.
        """
        total = zero
        failure = None

        def fold(item):
            nonlocal total, failure
            try:
                value = fn(item)
            except Exception as e:
                failure = e
                return Signal.STOP
            total = total + value
            return Signal.CONTINUE
        self.drive(fold)

        if failure is not None:
            terminal_logger.debug(f"Aggregate stopped on error: {failure!r}")
            return AggregateResult(zero, failure)
        return AggregateResult(total, None)

    # --------- helpers ----------
    def _derive(self, producer) -> "Sequence":
        return Sequence(producer, restartable=self.restartable)

    def _mapped(self, fn) -> "Sequence":
        def produce(visit):
            def step(item):
                return _forward(visit, fn(item))
            return self.drive(step)
        return self._derive(produce)


def _as_object(item) -> object:
    return item


class PairSequence:
    """A sequence whose visitor takes two arguments, such as (digest, element)."""
    def __init__(self, producer, restartable: bool = True):
        self._producer = producer
        self.restartable = restartable

    def drive(self, visitor: Callable[[Any, Any], Any]) -> Signal:
        stopped = False

        def guarded(key, value):
            nonlocal stopped
            if stopped:
                return Signal.STOP
            if visitor(key, value):
                return Signal.CONTINUE
            stopped = True
            return Signal.STOP

        self._producer(guarded)
        return Signal.STOP if stopped else Signal.CONTINUE

    def keys(self) -> Sequence:
        return Sequence(lambda visit: self.drive(lambda key, _: visit(key)), restartable=self.restartable)

    def values(self) -> Sequence:
        return Sequence(lambda visit: self.drive(lambda _, value: visit(value)), restartable=self.restartable)

    def to_list(self) -> List[tuple]:
        pairs = []

        def append(key, value):
            pairs.append((key, value))
            return Signal.CONTINUE
        self.drive(append)
        return pairs

    def to_dict(self) -> Dict[Any, Any]:
        """Collect into a dict; a later pair with the same key wins"""
        return dict(self.to_list())

    def count(self) -> int:
        return self.keys().count()

    def is_empty(self) -> bool:
        return self.keys().is_empty()


def as_sequence(source) -> Sequence:
    """Return source unchanged if it is already a Sequence, else wrap it with Sequence.of()"""
    if isinstance(source, Sequence):
        return source
    return Sequence.of(source)
