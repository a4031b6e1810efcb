"""Tests for Channel request/response multiplexing.

Verifies:
1. Replies are correlated by transaction id
2. The first settled handler outcome is the reply
3. A request nobody handles gets a NoHandler rejection
4. Two sweeps evict an unanswered request (reject or drop policy)
5. Disconnect rejects every pending request
"""

import asyncio

import pytest

from messaging.channel import Channel, first_settled
from messaging.exceptions import DisconnectedError, RemoteError, RequestTimeoutError
from messaging.transport import LocalTransport, Sender

from helpers import settle


def make_pair(**kwargs):
    a, b = LocalTransport.pair(sender_a=Sender(tab_id=1, is_top=True), sender_b=Sender())
    return Channel(a, sweep_interval=0, **kwargs), Channel(b, sweep_interval=0, **kwargs)


def test_request_reply_roundtrip():
    async def scenario():
        left, right = make_pair()
        right.on_request.add_listener(lambda payload, sender: {"echo": payload["value"], "tab": sender.tab_id})
        replies = await asyncio.gather(left.request({"value": 1}), left.request({"value": 2}))
        return replies, left.pending_count

    replies, pending = asyncio.run(scenario())
    assert replies == [{"echo": 1, "tab": 1}, {"echo": 2, "tab": 1}]
    assert pending == 0


def test_async_handler_reply():
    async def scenario():
        left, right = make_pair()

        async def handler(payload, sender):
            await asyncio.sleep(0)
            return payload["n"] * 2

        right.on_request.add_listener(handler)
        return await left.request({"n": 21})

    assert asyncio.run(scenario()) == 42


def test_first_settled_handler_wins():
    async def scenario():
        left, right = make_pair()

        async def slow(payload, sender):
            await asyncio.sleep(0.05)
            return "slow"

        right.on_request.add_listener(slow)
        right.on_request.add_listener(lambda payload, sender: "fast")
        return await left.request({})

    assert asyncio.run(scenario()) == "fast"


def test_handler_error_is_a_rejection():
    async def scenario():
        left, right = make_pair()

        def broken(payload, sender):
            raise ValueError("bad payload")

        right.on_request.add_listener(broken)
        with pytest.raises(RemoteError) as exc:
            await left.request({})
        return exc.value

    error = asyncio.run(scenario())
    assert error.error_type == "ValueError"
    assert "bad payload" in str(error)


def test_no_handler_reply():
    async def scenario():
        left, _right = make_pair()
        with pytest.raises(RemoteError) as exc:
            await left.request({"command": "anything"})
        return exc.value

    assert asyncio.run(scenario()).error_type == "NoHandler"


def test_notifications_reach_listeners():
    async def scenario():
        left, right = make_pair()
        received = []
        right.on_notification.add_listener(lambda payload, sender: received.append(payload))
        left.notify({"command": "changeMode", "mode": "HINT"})
        await settle()
        return received

    assert asyncio.run(scenario()) == [{"command": "changeMode", "mode": "HINT"}]


def test_sweep_rejects_after_two_passes():
    async def scenario():
        a, _b = LocalTransport.pair()
        channel = Channel(a, sweep_interval=0, stale_policy="reject")
        future = channel.request({"command": "never"})
        first = channel.sweep()
        still_pending = not future.done()
        second = channel.sweep()
        with pytest.raises(RequestTimeoutError):
            await future
        return first, still_pending, second, channel.pending_count

    assert asyncio.run(scenario()) == (0, True, 1, 0)


def test_sweep_drop_policy_leaves_future_pending():
    async def scenario():
        a, _b = LocalTransport.pair()
        channel = Channel(a, sweep_interval=0, stale_policy="drop")
        future = channel.request({"command": "never"})
        channel.sweep()
        channel.sweep()
        return future.done(), channel.pending_count

    assert asyncio.run(scenario()) == (False, 0)


def test_reply_before_second_sweep_survives():
    async def scenario():
        left, right = make_pair()
        right.on_request.add_listener(lambda payload, sender: "ok")
        future = left.request({})
        left.sweep()
        return await future

    assert asyncio.run(scenario()) == "ok"


def test_disconnect_rejects_pending():
    async def scenario():
        left, right = make_pair()
        disconnected = []
        left.on_disconnect.add_listener(disconnected.append)

        async def never(payload, sender):
            await asyncio.sleep(10)

        right.on_request.add_listener(never)
        future = left.request({})
        await settle()
        right.disconnect()
        with pytest.raises(DisconnectedError):
            await future
        late = left.request({})
        with pytest.raises(DisconnectedError):
            await late
        return disconnected, left.closed

    disconnected, closed = asyncio.run(scenario())
    assert closed
    assert len(disconnected) == 1


def test_unknown_stale_policy():
    a, _b = LocalTransport.pair()
    with pytest.raises(ValueError):
        Channel(a, stale_policy="ignore")


def test_first_settled_prefers_already_settled_in_order():
    async def scenario():
        loop = asyncio.get_running_loop()
        done_first = loop.create_future()
        done_first.set_result("first")
        done_second = loop.create_future()
        done_second.set_exception(ValueError("second"))
        return await first_settled([done_first, done_second])

    assert asyncio.run(scenario()) == "first"


def test_first_settled_needs_awaitables():
    async def scenario():
        with pytest.raises(ValueError):
            await first_settled([])

    asyncio.run(scenario())
