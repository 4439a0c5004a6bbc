"""Observable values with synchronous fan-out to subscribers.

A LiveValue holds the latest published value and delivers every new value
to its subscribers on the event loop thread. Consumers either register a
callback with subscribe() or iterate asynchronously with stream().
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable

logger = logging.getLogger(__name__)

ValueCallback = Callable[[Any], None]
CloseCallback = Callable[[], None]

_UNSET = object()
_CLOSED = object()


class Subscription:
    """Handle returned by LiveValue.subscribe(); cancel() detaches it."""

    def __init__(
        self,
        live: "LiveValue",
        callback: ValueCallback,
        on_close: CloseCallback | None = None,
    ):
        self._live = live
        self.callback = callback
        self.on_close = on_close
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._live._remove(self)


class LiveValue:
    """A value that changes over time and notifies its subscribers.

    Once closed, a LiveValue never emits again and cannot be restarted;
    new subscriptions are closed immediately.
    """

    def __init__(
        self,
        name: str = "live",
        value: Any = _UNSET,
        on_idle: CloseCallback | None = None,
    ):
        """Initialize the value.

        Args:
            name: Label used in log messages.
            value: Initial value; omit for none.
            on_idle: Called whenever a cancelled subscription leaves no
                subscribers behind.
        """
        self.name = name
        self._value = value
        self._on_idle = on_idle
        self._subscriptions: list[Subscription] = []
        self._closed = False
        self._error: BaseException | None = None

    @property
    def value(self) -> Any:
        """Latest published value, or None if nothing was published."""
        return None if self._value is _UNSET else self._value

    @property
    def has_value(self) -> bool:
        return self._value is not _UNSET

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        callback: ValueCallback,
        on_close: CloseCallback | None = None,
        replay: bool = True,
    ) -> Subscription:
        """Register a callback for future values.

        Args:
            callback: Called with each published value.
            on_close: Called once when the LiveValue is closed.
            replay: Deliver the current value immediately, if there is one.

        Returns:
            Subscription handle.
        """
        subscription = Subscription(self, callback, on_close)

        if self._closed:
            subscription.active = False
            if on_close:
                on_close()
            return subscription

        self._subscriptions.append(subscription)
        if replay and self._value is not _UNSET:
            callback(self._value)
        return subscription

    def publish(self, value: Any) -> None:
        """Store a value and deliver it to every active subscriber."""
        if self._closed:
            logger.debug(f"Dropping value published to closed {self.name}")
            return

        self._value = value
        for subscription in list(self._subscriptions):
            if subscription.active:
                subscription.callback(value)

    def close(self) -> None:
        """Detach all subscribers and end every stream."""
        if self._closed:
            return

        self._closed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.active = False
            if subscription.on_close:
                subscription.on_close()

    def fail(self, error: BaseException) -> None:
        """Close with an error that stream() consumers will receive."""
        if self._closed:
            return
        self._error = error
        self.close()

    async def stream(self) -> AsyncIterator[Any]:
        """Iterate over values as they are published.

        Starts with the current value when there is one. Ends when the
        LiveValue is closed, raising its error if it failed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        subscription = self.subscribe(
            queue.put_nowait,
            on_close=lambda: queue.put_nowait(_CLOSED),
        )

        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    if self._error is not None:
                        raise self._error
                    return
                yield item
        finally:
            subscription.cancel()

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        if not self._subscriptions and self._on_idle:
            self._on_idle()
