# tests/test_dispatcher.py
# What this covers:
#   - Subscription order, duplicate subscribe, unsubscribe
#   - stop_propagation hides the event from later handlers
#   - A failing handler does not stop delivery

from core.hooks.dispatcher import EventDispatcher

def test_handlers_run_in_subscription_order_once():
    d = EventDispatcher()
    seen = []
    first = lambda ev, ctl: seen.append(("first", ev))
    second = lambda ev, ctl: seen.append(("second", ev))
    d.subscribe("keydown", first)
    d.subscribe("keydown", second)
    d.subscribe("keydown", first)

    d.dispatch("keydown", 1)
    assert seen == [("first", 1), ("second", 1)]
    assert d.handler_count("keydown") == 2

def test_unsubscribe_and_unknown_handler():
    d = EventDispatcher()
    seen = []
    h = lambda ev, ctl: seen.append(ev)
    d.subscribe("keydown", h)
    d.unsubscribe("keydown", h)
    d.unsubscribe("keydown", h)
    d.unsubscribe("keyup", h)

    d.dispatch("keydown", "x")
    assert seen == []
    assert d.handler_count("keydown") == 0

def test_stop_propagation_and_prevent_default():
    d = EventDispatcher()
    seen = []

    def stopper(ev, ctl):
        ctl.stop_propagation()
        ctl.prevent_default()

    d.subscribe("keydown", stopper)
    d.subscribe("keydown", lambda ev, ctl: seen.append(ev))

    ctl = d.dispatch("keydown", "x")
    assert ctl.propagation_stopped
    assert ctl.default_prevented
    assert seen == []

def test_failing_handler_is_isolated():
    d = EventDispatcher()
    seen = []

    def broken(ev, ctl):
        raise RuntimeError("bad handler")

    d.subscribe("keydown", broken)
    d.subscribe("keydown", lambda ev, ctl: seen.append(ev))
    d.dispatch("keydown", "y")
    assert seen == ["y"]

def test_dispatch_without_handlers_returns_clean_control():
    ctl = EventDispatcher().dispatch("keydown", None)
    assert not ctl.propagation_stopped
    assert not ctl.default_prevented
