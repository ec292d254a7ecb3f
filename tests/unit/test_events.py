"""Unit tests for the event emitter."""

from paywiser.core.events import EventEmitter


class TestEventEmitter:
    """Test listener registration and dispatch."""

    def test_listeners_run_in_order(self):
        """Listeners receive arguments in registration order."""
        emitter = EventEmitter()
        calls = []
        emitter.on("disconnected", lambda info: calls.append(("a", info)))
        emitter.on("disconnected", lambda info: calls.append(("b", info)))

        assert emitter.emit("disconnected", {"code": 1000}) == 2
        assert calls == [("a", {"code": 1000}), ("b", {"code": 1000})]

    def test_failing_listener_isolated(self, caplog):
        """A raising listener is logged; later listeners still run."""
        emitter = EventEmitter()
        calls = []

        def broken():
            raise RuntimeError("boom")

        emitter.on("connected", broken)
        emitter.on("connected", lambda: calls.append("ok"))
        emitter.emit("connected")

        assert calls == ["ok"]
        assert "Listener for 'connected' event failed" in caplog.text

    def test_off(self):
        """Removed listeners are not called."""
        emitter = EventEmitter()
        listener = emitter.on("message", lambda m: None)
        emitter.off("message", listener)
        assert emitter.listener_count("message") == 0
        assert emitter.emit("message", object()) == 0
