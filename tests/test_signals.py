"""Tests for Signal."""

from roleswitch.core.signals import Signal


class TestSignal:
    """Tests for synchronous publish/subscribe."""

    def test_delivers_in_subscription_order(self):
        signal = Signal("demo")
        received = []
        signal.subscribe(lambda v: received.append(("a", v)))
        signal.subscribe(lambda v: received.append(("b", v)))

        signal.emit(1)

        assert received == [("a", 1), ("b", 1)]

    def test_no_replay_for_late_subscribers(self):
        signal = Signal("demo")
        signal.emit("early")
        received = []

        signal.subscribe(received.append)

        assert received == []

    def test_unsubscribe(self):
        signal = Signal("demo")
        received = []
        unsubscribe = signal.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        signal.emit(1)

        assert received == []
        assert len(signal) == 0

    def test_failing_subscriber_does_not_block_others(self):
        signal = Signal("demo")
        received = []

        def broken(value):
            raise RuntimeError("boom")

        signal.subscribe(broken)
        signal.subscribe(received.append)

        signal.emit("value")

        assert received == ["value"]

    def test_clear(self):
        signal = Signal("demo")
        signal.subscribe(print)

        signal.clear()

        assert len(signal) == 0
