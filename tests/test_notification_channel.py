"""
Tests for CurrentValueChannel.

Tests cover replay of the latest snapshot, delivery order, snapshot
isolation, failing subscribers and re-entrant sends.
"""

import pytest

from taskkeeper.services.notification_channel import CurrentValueChannel, ReentrantEmissionError


class TestCurrentValueChannel:
    """Tests for snapshot broadcast."""

    def test_subscribe_delivers_initial_value(self):
        """Test a new subscriber immediately receives the current snapshot."""
        channel = CurrentValueChannel("test")
        received = []

        channel.subscribe(received.append)

        assert received == [[]]

    def test_initial_snapshot(self):
        """Test an initial list is delivered and copied, and None means empty."""
        initial = [1, 2]
        channel = CurrentValueChannel("test", initial)
        initial.append(3)

        assert channel.value == [1, 2]
        assert CurrentValueChannel("test", None).value == []

    def test_subscribe_after_send_gets_latest(self):
        """Test late subscribers receive the latest snapshot only."""
        channel = CurrentValueChannel("test")
        channel.send([1])
        channel.send([1, 2])
        received = []

        channel.subscribe(received.append)

        assert received == [[1, 2]]

    def test_send_delivers_full_snapshot_to_all(self):
        """Test every subscriber receives the complete list on each send."""
        channel = CurrentValueChannel("test")
        first, second = [], []
        channel.subscribe(first.append)
        channel.subscribe(second.append)

        channel.send(["a"])
        channel.send(["a", "b"])

        assert first == [[], ["a"], ["a", "b"]]
        assert second == [[], ["a"], ["a", "b"]]

    def test_delivery_in_subscription_order(self):
        """Test subscribers are called in the order they subscribed."""
        channel = CurrentValueChannel("test")
        calls = []
        for name in ["first", "second", "third"]:
            channel.subscribe(lambda snapshot, name=name: calls.append(name))
        calls.clear()

        channel.send([1])

        assert calls == ["first", "second", "third"]

    def test_snapshot_is_a_copy(self):
        """Test handlers cannot change the channel's value or the sender's list."""
        channel = CurrentValueChannel("test")
        source = [1, 2]
        channel.subscribe(lambda snapshot: snapshot.append("mutated"))

        channel.send(source)

        assert source == [1, 2]
        assert channel.value == [1, 2]

    def test_failing_subscriber_does_not_stop_delivery(self, caplog):
        """Test an exception in one handler is logged and others still run."""
        channel = CurrentValueChannel("test")
        received = []

        def broken(snapshot):
            if snapshot:
                raise ValueError("boom")

        channel.subscribe(broken)
        channel.subscribe(received.append)

        channel.send([1])

        assert received == [[], [1]]
        assert "subscriber failed" in caplog.text

    def test_reentrant_send_raises(self):
        """Test that sending from inside a handler is refused."""
        channel = CurrentValueChannel("test")

        def echo(snapshot):
            if snapshot == [1]:
                channel.send([1, 1])

        channel.subscribe(echo)

        with pytest.raises(ReentrantEmissionError):
            channel.send([1])

        # Channel is usable again afterwards
        channel.send([2])
        assert channel.value == [2]

    def test_reentrant_send_during_subscribe_raises(self):
        """Test a handler sending during its initial delivery is refused."""
        channel = CurrentValueChannel("test")

        with pytest.raises(ReentrantEmissionError):
            channel.subscribe(lambda snapshot: channel.send(["x"]))

        assert channel.value == []

    def test_subscriber_count(self):
        """Test subscribers accumulate with no unsubscribe."""
        channel = CurrentValueChannel("test", initial=[0])
        channel.subscribe(lambda snapshot: None)
        channel.subscribe(lambda snapshot: None)

        assert channel.subscriber_count == 2
        assert channel.value == [0]
