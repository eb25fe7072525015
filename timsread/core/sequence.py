# timsread/core/sequence.py
from typing import Callable, Generic, Iterator, TypeVar

T = TypeVar("T")


class LazySequence(Generic[T]):
    """
    Finite, restartable iterable backed by a cursor factory.

    Every call to ``iter()`` starts a fresh cursor, so the same sequence can be
    walked any number of times. Items are produced one at a time and never
    materialized as a whole.
    """

    def __init__(self, cursor_factory: Callable[[], Iterator[T]], length: int):
        self._cursor_factory = cursor_factory
        self._length = length

    def __iter__(self) -> Iterator[T]:
        return self._cursor_factory()

    def __len__(self) -> int:
        return self._length

    def __repr__(self) -> str:
        return f"{type(self).__name__}(length={self._length})"
