"""
Tests for user-facing notices.
"""
import logging

from tmap import notify as notify_module


def test_notify_prints_and_logs(monkeypatch, caplog):
    printed = []
    monkeypatch.setattr(notify_module.console, "print", lambda text: printed.append(text))

    with caplog.at_level(logging.WARNING, logger="tmap.notify"):
        notify_module.notify('A view name must not contain any "/"')

    assert 'must not contain any "/"' in printed[0]
    assert "must not contain" in caplog.text


def test_markup_in_message_is_escaped(monkeypatch):
    printed = []
    monkeypatch.setattr(notify_module.console, "print", lambda text: printed.append(text))
    notify_module.notify("[tag[x]]")
    assert "\\[x]" in printed[0]
