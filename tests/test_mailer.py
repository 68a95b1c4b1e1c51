from datetime import date, datetime

import pytest

from studysync.exceptions import NotificationError
from studysync.mailer import Mailer, describe, subject_color
from studysync.models import Change, Diff

from conftest import make_event


@pytest.fixture
def mail_settings(settings):
    return settings.model_copy(
        update={"SMTP_HOST": "smtp.example.org", "MAIL_FROM": "bot@example.org", "MAIL_TO": "me@example.org"}
    )


def test_describe():
    event = make_event(title="Anatomie Vorlesung", location="Hörsaal 1")
    assert describe(event) == "Mon 20.04. 08:15-09:45 Anatomie Vorlesung (Hörsaal 1)"


def test_subject_color():
    assert subject_color("Anatomie") == "#ef4444"
    assert subject_color(None) == "#64748b"


def test_render_change_mail(settings):
    diff = Diff(
        added=[make_event(title="New <Seminar>")],
        removed=[make_event(title="Gone")],
        changed=[Change(before=make_event(title="Moved", id="m"), after=make_event(title="Moved", time_from="10:15", id="m"))],
    )

    subject, html = Mailer(settings).render_change_mail(diff, now=datetime(2026, 4, 19, 21, 0))

    assert subject == "Timetable changes - 19.04.2026"
    assert "1 new" in html and "1 changed" in html and "1 removed" in html
    assert "New &lt;Seminar&gt;" in html
    assert "Gone" in html
    assert "10:15-09:45 Moved" in html


def test_render_weekly_overview(settings):
    events = [
        make_event(title="Histologie Kurs", day="2026-04-22", subject="Histologie", mandatory=True),
        make_event(title="Anatomie Vorlesung", day="2026-04-20", subject="Anatomie"),
        make_event(title="Last week", day="2026-04-15"),
    ]

    subject, html = Mailer(settings).render_weekly_overview(events, today=date(2026, 4, 19))

    assert subject == "Week ahead - from 20.04.2026"
    assert html.index("Mon 20.04.") < html.index("Wed 22.04.")
    assert "[MANDATORY]" in html
    assert "#f97316" in html
    assert "Last week" not in html


def test_render_empty_week(settings):
    _, html = Mailer(settings).render_weekly_overview([], today=date(2026, 4, 19))
    assert "No events next week." in html


@pytest.mark.asyncio
async def test_unconfigured_mailer_does_not_send(settings):
    mailer = Mailer(settings)
    assert await mailer(Diff(added=[make_event()])) is False
    assert await mailer.send_weekly_overview([make_event()]) is False
    with pytest.raises(NotificationError):
        await mailer.send_test_mail()


@pytest.mark.asyncio
async def test_empty_diff_sends_nothing(mail_settings, monkeypatch):
    mailer = Mailer(mail_settings)
    sent = []
    monkeypatch.setattr(mailer, "_send", lambda subject, html: sent.append(subject))

    assert await mailer(Diff()) is False
    assert sent == []


@pytest.mark.asyncio
async def test_change_mail_sent(mail_settings, monkeypatch):
    mailer = Mailer(mail_settings)
    sent = []
    monkeypatch.setattr(mailer, "_send", lambda subject, html: sent.append((subject, html)))

    assert await mailer(Diff(added=[make_event()])) is True
    assert len(sent) == 1
    assert sent[0][0].startswith("Timetable changes")


@pytest.mark.asyncio
async def test_smtp_failure_returns_false(mail_settings, monkeypatch):
    mailer = Mailer(mail_settings)

    def fail(subject, html):
        raise NotificationError("SMTP delivery failed")

    monkeypatch.setattr(mailer, "_send", fail)

    assert await mailer(Diff(added=[make_event()])) is False
    with pytest.raises(NotificationError):
        await mailer.send_test_mail()
