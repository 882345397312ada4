"""Unit tests for audit event emission."""

import logging

from unittest.mock import MagicMock, patch
from envvault.core import audit
from envvault.core.models import AuditEvent


def _event(**changes):
    fields = dict(operation="set", environment="dev", actor="alice", key_name="API_KEY")
    fields.update(changes)
    return AuditEvent(**fields)


def test_emit_without_sink_is_noop():
    audit.emit(None, _event())


def test_emit_delivers_event():
    sink = MagicMock()
    event = _event()
    audit.emit(sink, event)
    sink.record.assert_called_once_with(event)


def test_emit_swallows_sink_failure(caplog):
    sink = MagicMock()
    sink.record.side_effect = RuntimeError("sink down")
    with caplog.at_level(logging.WARNING, logger="envvault.core.audit"):
        audit.emit(sink, _event())
    assert "audit sink failed" in caplog.text


def test_logging_sink_writes_record(caplog):
    sink = audit.LoggingAuditSink()
    with caplog.at_level(logging.INFO, logger="envvault.audit"):
        sink.record(_event(details="1 secrets"))
    assert "set env=dev key=API_KEY actor=alice outcome=success details=1 secrets" in caplog.text


def test_current_actor_falls_back():
    with patch("envvault.core.audit.getpass.getuser", side_effect=OSError("no user")):
        assert audit.current_actor() == "unknown"
