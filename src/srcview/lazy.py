"""Compute-once slots, used to cache decoded sub-resources per archive entry."""
from typing import Callable, Generic, Optional, TypeVar
import threading

from srcview import logger


__all__ = ['LazyCache']
T = TypeVar('T')
LOGGER = logger.get_logger(__name__)


class LazyCache(Generic[T]):
    """A slot which is filled exactly once, by the first caller of :py:meth:`get`.

    The result is stored whether the function returns or raises. Later callers
    receive the same value, or have the same exception object raised again.
    Concurrent callers block until the first one has finished, so the function
    never runs twice.
    """
    __slots__ = ['_lock', '_done', '_value', '_error', 'name']
    _value: Optional[T]
    _error: Optional[BaseException]

    def __init__(self, name: str = '') -> None:
        self._lock = threading.Lock()
        self._done = False
        self._value = None
        self._error = None
        self.name = name

    def __repr__(self) -> str:
        if not self._done:
            state = 'empty'
        elif self._error is not None:
            state = f'failed: {self._error!r}'
        else:
            state = f'set: {self._value!r}'
        return f'<LazyCache {self.name!r} {state}>'

    @property
    def is_set(self) -> bool:
        """Check if the slot has been computed, either successfully or not."""
        return self._done

    def _result(self) -> T:
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def get(self, func: Callable[[], T]) -> T:
        """Return the cached result, computing it with ``func`` if this is the first call."""
        if self._done:  # Fast path, already filled.
            return self._result()
        with self._lock:
            if not self._done:
                try:
                    self._value = func()
                except Exception as exc:
                    LOGGER.warning('Failed to decode {}: {}', self.name or 'entry', exc)
                    self._error = exc
                self._done = True
        return self._result()

    def peek(self) -> Optional[T]:
        """Return the value if already computed, or None otherwise.

        A cached failure is raised again.
        """
        if not self._done:
            return None
        return self._result()

    def offer(self, value: T) -> bool:
        """Fill the slot if it is empty and no other caller is computing it.

        This never blocks. Returns whether the value was stored.
        """
        if self._done or not self._lock.acquire(blocking=False):
            return False
        try:
            if self._done:
                return False
            self._value = value
            self._done = True
            return True
        finally:
            self._lock.release()

    def set(self, value: T) -> None:
        """Fill the slot directly.

        :raises ValueError: If the slot was already filled.
        """
        with self._lock:
            if self._done:
                raise ValueError(f'{self!r} was already computed!')
            self._value = value
            self._done = True
