"""Tests for the session event bus."""

import logging

from ..session import SessionEvent, SessionEventEmitter, SessionEventType


def test_emit_reaches_subscribers_once():
    emitter = SessionEventEmitter()
    seen = []
    emitter.subscribe(SessionEventType.PHASE_CHANGE, seen.append)
    emitter.subscribe(SessionEventType.PHASE_CHANGE, seen.append)
    emitter.emit(SessionEvent(SessionEventType.PHASE_CHANGE, data={"phase": 1}))
    emitter.emit(SessionEvent(SessionEventType.SESSION_END))
    assert len(seen) == 1
    assert seen[0].timestamp is not None
    assert "phase=1" in str(seen[0])


def test_failing_subscriber_does_not_block_others(caplog):
    emitter = SessionEventEmitter()
    seen = []

    def broken(_event):
        raise RuntimeError("boom")

    emitter.subscribe(SessionEventType.HOLD_START, broken)
    emitter.subscribe(SessionEventType.HOLD_START, seen.append)
    with caplog.at_level(logging.ERROR, logger="breathwork.session.events"):
        emitter.emit(SessionEvent(SessionEventType.HOLD_START))
    assert len(seen) == 1
    assert "boom" in caplog.text


def test_unsubscribe_and_clear():
    emitter = SessionEventEmitter()
    seen = []
    emitter.subscribe(SessionEventType.HOLD_END, seen.append)
    emitter.unsubscribe(SessionEventType.HOLD_END, seen.append)
    emitter.unsubscribe(SessionEventType.HOLD_END, seen.append)
    emitter.emit(SessionEvent(SessionEventType.HOLD_END))
    emitter.subscribe(SessionEventType.HOLD_END, seen.append)
    emitter.clear_all()
    emitter.emit(SessionEvent(SessionEventType.HOLD_END))
    assert seen == []


def test_subscriber_may_unsubscribe_during_emit():
    emitter = SessionEventEmitter()
    seen = []

    def once(event):
        seen.append(event)
        emitter.unsubscribe(SessionEventType.SESSION_START, once)

    emitter.subscribe(SessionEventType.SESSION_START, once)
    emitter.emit(SessionEvent(SessionEventType.SESSION_START))
    emitter.emit(SessionEvent(SessionEventType.SESSION_START))
    assert len(seen) == 1
