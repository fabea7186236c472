"""
Result channels for streaming search results to concurrent consumers.

A ResultChannels set bundles three unbuffered channels: directory entries,
referral URIs and response controls. One producer (a streaming search) sends
into them while consumers on other threads receive. A send blocks until a
consumer takes the item, which throttles reads from the server to the pace of
the slowest consumer.

Each set is bound to a Context. Cancelling the context wakes a blocked producer,
which then abandons the operation instead of waiting for a reader that is gone.

The close mode is chosen when the set is created:
- keep_open=False: the producer closes the set when its operation ends
- keep_open=True: the caller closes the set with close() once no producer can
  still be sending
"""

import threading
from typing import Any, Callable, Generic, Iterator, List, NamedTuple, Optional, TypeVar

from ldapsession.lib.errors import (
    ChannelClosedError,
    ChannelLifecycleError,
    OperationCancelledError,
)

T = TypeVar("T")


class Control(NamedTuple):
    """Response control returned by the server alongside search results."""

    oid: str
    criticality: bool
    value: Any
    description: str = ""


class Context:
    """
    Cancellation handle shared between a producer and its consumers.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel the context and wake everything waiting on it."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)

        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """
        Register a callback run once when the context is cancelled.

        If the context is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return

        callback()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class Channel(Generic[T]):
    """
    Unbuffered channel: a send completes only once a receiver has taken the item.

    Iterating over a channel receives until it is closed.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._cond = threading.Condition()
        self._item: Optional[T] = None
        self._pending = False
        self._sent = 0
        self._received = 0
        self._closed = False
        self._context: Optional[Context] = None

    def __repr__(self) -> str:
        return f"<Channel {self.name!r} closed={self._closed}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, context: Context) -> None:
        """Wake blocked senders when the context is cancelled."""
        self._context = context
        context.on_cancel(self._wake)

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def _check_cancelled(self) -> None:
        if self._context is not None and self._context.cancelled:
            raise OperationCancelledError(
                f"operation cancelled while sending on {self.name!r} channel"
            )

    def send(self, item: T) -> None:
        """
        Hand an item to a receiver, blocking until it has been taken.

        Raises:
            ChannelClosedError: If the channel is closed before the item is taken
            OperationCancelledError: If the bound context is cancelled while waiting
        """
        with self._cond:
            # Wait for a previous item from another sender to be taken
            while self._pending:
                if self._closed:
                    raise ChannelClosedError(f"send on closed {self.name!r} channel")
                self._check_cancelled()
                self._cond.wait()

            if self._closed:
                raise ChannelClosedError(f"send on closed {self.name!r} channel")
            self._check_cancelled()

            self._item = item
            self._pending = True
            self._sent += 1
            ticket = self._sent
            self._cond.notify_all()

            while self._received < ticket:
                if self._closed:
                    raise ChannelClosedError(
                        f"{self.name!r} channel closed before the item was received"
                    )
                if self._context is not None and self._context.cancelled:
                    # Withdraw the item nobody took
                    self._item = None
                    self._pending = False
                    self._sent -= 1
                    self._cond.notify_all()
                    self._check_cancelled()
                self._cond.wait()

    def recv(self, timeout: Optional[float] = None) -> T:
        """
        Receive the next item, blocking until one is sent or the channel closes.

        Args:
            timeout: Seconds to wait, None to wait forever

        Raises:
            ChannelClosedError: If the channel is closed and nothing is pending
            TimeoutError: If nothing arrived within the timeout
        """
        with self._cond:
            if not self._cond.wait_for(
                lambda: self._pending or self._closed, timeout=timeout
            ):
                raise TimeoutError(f"nothing received on {self.name!r} channel")

            if not self._pending:
                raise ChannelClosedError(f"{self.name!r} channel is closed")

            item = self._item
            self._item = None
            self._pending = False
            self._received += 1
            self._cond.notify_all()
            return item  # type: ignore[return-value]

    def close(self) -> None:
        """
        Close the channel. Blocked senders fail, receivers see the closed signal.

        Raises:
            ChannelLifecycleError: If the channel is already closed
        """
        with self._cond:
            if self._closed:
                raise ChannelLifecycleError(f"{self.name!r} channel is already closed")
            self._closed = True
            self._item = None
            self._pending = False
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.recv()
            except ChannelClosedError:
                return


class ResultChannels:
    """
    The entries, referrals and controls channels of one streaming operation.

    Attributes:
        entries: Directory entries, in server order
        referrals: Referral URIs, in server order
        controls: Response controls, in server order
        keep_open: True if the caller, not the producer, closes the set
    """

    def __init__(self, context: Context, keep_open: bool = False) -> None:
        self.context = context
        self.keep_open = keep_open

        self.entries: Channel[Any] = Channel("entries")
        self.referrals: Channel[str] = Channel("referrals")
        self.controls: Channel[Control] = Channel("controls")

        for channel in self.channels:
            channel.bind(context)

        self._lock = threading.Lock()
        self._active = False
        self._used = False
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"<ResultChannels keep_open={self.keep_open} "
            f"active={self._active} closed={self._closed}>"
        )

    @property
    def channels(self) -> List[Channel[Any]]:
        return [self.entries, self.referrals, self.controls]

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active(self) -> bool:
        """True while a producer is streaming into the set."""
        return self._active

    @property
    def used(self) -> bool:
        """True once a producer has started streaming into the set."""
        return self._used

    def mark_keep_open(self) -> None:
        """
        Switch the set to caller-managed closing.

        Only allowed before a producer has touched the set, so the producer can
        never race the switch.

        Raises:
            ChannelLifecycleError: If the set is closed or already used
        """
        with self._lock:
            if self._closed:
                raise ChannelLifecycleError("cannot keep a closed channel set open")
            if self._used:
                raise ChannelLifecycleError(
                    "keep-open must be chosen before the channel set is used"
                )
            self.keep_open = True

    def begin(self) -> None:
        """
        Claim the set for a producer.

        Raises:
            ChannelLifecycleError: If the set is closed or another producer is active
        """
        with self._lock:
            if self._closed:
                raise ChannelLifecycleError(
                    "channel set is closed, attach a fresh set before streaming"
                )
            if self._active:
                raise ChannelLifecycleError(
                    "another operation is already streaming into this channel set"
                )
            self._active = True
            self._used = True

    def finish(self) -> None:
        """Release the set after a producer is done; auto-close unless keep_open."""
        with self._lock:
            self._active = False
            should_close = not self.keep_open and not self._closed

        if should_close:
            self.close()

    def close(self) -> None:
        """
        Close all three channels.

        Raises:
            ChannelLifecycleError: If the set is already closed
        """
        with self._lock:
            if self._closed:
                raise ChannelLifecycleError("channel set is already closed")
            self._closed = True

        for channel in self.channels:
            if not channel.closed:
                channel.close()
