"""
Change notification channel for taskkeeper.

A current-value broadcast: the channel remembers the latest snapshot, hands
it to every new subscriber straight away, and re-delivers the full snapshot
to all subscribers whenever a new one is sent.
"""

from typing import Callable, Generic, List, Optional, TypeVar

from taskkeeper.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[List[T]], None]


class ReentrantEmissionError(RuntimeError):
    """Raised when a handler sends on the channel that is delivering to it."""
    pass


class CurrentValueChannel(Generic[T]):
    """
    Replay-latest broadcast of list snapshots.

    Delivery is synchronous and follows subscription order. Each handler
    receives its own shallow copy of the snapshot. Handlers live as long as
    the channel; there is no unsubscribe.
    """

    def __init__(self, name: str, initial: Optional[List[T]] = None):
        """
        Initialize the channel.

        Args:
            name: Label used in log messages
            initial: Snapshot delivered to subscribers before the first send
        """
        self.name = name
        self._value: List[T] = list(initial or [])
        self._handlers: List[Handler] = []
        self._emitting = False

    @property
    def value(self) -> List[T]:
        """Copy of the latest snapshot."""
        return list(self._value)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: Handler) -> None:
        """
        Register a handler and deliver the current snapshot to it.

        Args:
            handler: Callable receiving the full list on every change
        """
        self._handlers.append(handler)
        logger.debug(f"Channel '{self.name}': subscriber #{len(self._handlers)} registered")

        was_emitting = self._emitting
        self._emitting = True
        try:
            self._deliver(handler, self._value)
        finally:
            self._emitting = was_emitting

    def send(self, value: List[T]) -> None:
        """
        Store a new snapshot and deliver it to every subscriber.

        Args:
            value: The complete current list

        Raises:
            ReentrantEmissionError: If called from inside a handler of this channel
        """
        if self._emitting:
            logger.error(f"Channel '{self.name}': send() called while delivering")
            raise ReentrantEmissionError(
                f"Channel '{self.name}' cannot send from inside one of its handlers"
            )

        self._value = list(value)
        self._emitting = True
        try:
            for handler in list(self._handlers):
                self._deliver(handler, self._value)
        finally:
            self._emitting = False

        logger.debug(
            f"Channel '{self.name}': delivered {len(self._value)} items "
            f"to {len(self._handlers)} subscribers"
        )

    def _deliver(self, handler: Handler, snapshot: List[T]) -> None:
        try:
            handler(list(snapshot))
        except ReentrantEmissionError:
            raise
        except Exception as e:
            logger.error(f"Channel '{self.name}': subscriber failed: {e}", exc_info=True)
