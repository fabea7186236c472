import threading
import time

import pytest

from ldapsession.lib.channels import Channel, Context, ResultChannels
from ldapsession.lib.errors import (
    ChannelClosedError,
    ChannelLifecycleError,
    OperationCancelledError,
)


def start(target, *args):
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def test_send_blocks_until_received():
    channel = Channel("entries")
    channel.bind(Context())
    done = threading.Event()

    def sender():
        channel.send("a")
        done.set()

    thread = start(sender)

    assert not done.wait(0.2)
    assert channel.recv(timeout=5) == "a"
    thread.join(timeout=5)
    assert done.is_set()


def test_items_arrive_in_order():
    channel = Channel("entries")
    channel.bind(Context())

    def sender():
        for i in range(10):
            channel.send(i)
        channel.close()

    start(sender)

    assert list(channel) == list(range(10))


def test_recv_timeout():
    channel = Channel("controls")

    with pytest.raises(TimeoutError):
        channel.recv(timeout=0.05)


def test_recv_after_close():
    channel = Channel("referrals")
    channel.close()

    with pytest.raises(ChannelClosedError):
        channel.recv(timeout=1)


def test_double_close_is_reported():
    channel = Channel("referrals")
    channel.close()

    with pytest.raises(ChannelLifecycleError):
        channel.close()


def test_send_on_closed_channel():
    channel = Channel("entries")
    channel.close()

    with pytest.raises(ChannelClosedError):
        channel.send("a")


def test_close_unblocks_sender():
    channel = Channel("entries")
    errors = []

    def sender():
        try:
            channel.send("a")
        except ChannelClosedError as e:
            errors.append(e)

    thread = start(sender)
    time.sleep(0.1)
    channel.close()
    thread.join(timeout=5)

    assert len(errors) == 1


def test_cancel_unblocks_sender_and_withdraws_item():
    context = Context()
    channel = Channel("entries")
    channel.bind(context)
    errors = []

    def sender():
        try:
            channel.send("orphan")
        except OperationCancelledError as e:
            errors.append(e)

    thread = start(sender)
    time.sleep(0.1)
    context.cancel()
    thread.join(timeout=5)

    assert len(errors) == 1
    with pytest.raises(TimeoutError):
        channel.recv(timeout=0.05)


def test_send_after_cancel_fails_immediately():
    context = Context()
    context.cancel()
    channel = Channel("entries")
    channel.bind(context)

    with pytest.raises(OperationCancelledError):
        channel.send("a")


def test_on_cancel_runs_once():
    context = Context()
    calls = []
    context.on_cancel(lambda: calls.append("registered"))

    context.cancel()
    context.cancel()
    context.on_cancel(lambda: calls.append("late"))

    assert calls == ["registered", "late"]
    assert context.cancelled
    assert context.wait(0)


def test_result_channels_close_after_operation():
    channels = ResultChannels(Context())

    channels.begin()
    assert channels.active and channels.used
    channels.finish()

    assert channels.closed
    assert all(channel.closed for channel in channels.channels)
    with pytest.raises(ChannelLifecycleError):
        channels.begin()
    with pytest.raises(ChannelLifecycleError):
        channels.close()


def test_result_channels_keep_open():
    channels = ResultChannels(Context(), keep_open=True)

    channels.begin()
    channels.finish()
    channels.begin()
    channels.finish()

    assert not channels.closed
    channels.close()
    assert channels.closed


def test_single_producer_at_a_time():
    channels = ResultChannels(Context(), keep_open=True)
    channels.begin()

    with pytest.raises(ChannelLifecycleError):
        channels.begin()


def test_mark_keep_open_only_before_use():
    channels = ResultChannels(Context())
    channels.mark_keep_open()
    assert channels.keep_open

    channels.begin()
    with pytest.raises(ChannelLifecycleError):
        channels.mark_keep_open()


def test_mark_keep_open_on_closed_set():
    channels = ResultChannels(Context())
    channels.close()

    with pytest.raises(ChannelLifecycleError):
        channels.mark_keep_open()
