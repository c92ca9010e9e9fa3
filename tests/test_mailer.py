import smtplib

import pytest

from mailer import Attachment, DeliveryOutcome, DeliveryStatus, SMTPMailer


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, username, password):
        self.logged_in = (username, password)

    def send_message(self, message):
        self.sent.append(message)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr("mailer.smtplib.SMTP", FakeSMTP)
    return FakeSMTP


def _configured():
    return SMTPMailer(
        host="smtp.example.com",
        port=2525,
        username="user",
        password="secret",
        from_email="no-reply@clinic.example",
    )


def test_unconfigured_mailer_skips_sending(fake_smtp):
    outcome = SMTPMailer().send("a@b.com", "subject", "body")
    assert outcome == DeliveryOutcome(DeliveryStatus.NOT_CONFIGURED, "SMTP not configured")
    assert not outcome.sent
    assert fake_smtp.instances == []


def test_send_with_attachment(fake_smtp):
    outcome = _configured().send(
        "a@b.com", "Your report", "Hello", Attachment("report.pdf", b"%PDF-1.4 data")
    )
    assert outcome.sent
    server = fake_smtp.instances[0]
    assert (server.host, server.port) == ("smtp.example.com", 2525)
    assert server.started_tls
    assert server.logged_in == ("user", "secret")

    message = server.sent[0]
    assert message["To"] == "a@b.com"
    assert message["Subject"] == "Your report"
    attachments = list(message.iter_attachments())
    assert attachments[0].get_filename() == "report.pdf"
    assert attachments[0].get_content() == b"%PDF-1.4 data"


def test_missing_recipient_fails(fake_smtp):
    outcome = _configured().send("", "subject", "body")
    assert outcome.status is DeliveryStatus.FAILED
    assert fake_smtp.instances == []


@pytest.mark.parametrize(
    "error",
    [OSError("connection refused"), smtplib.SMTPAuthenticationError(535, b"bad credentials")],
)
def test_transport_errors_become_failed_outcomes(monkeypatch, error):
    class BrokenSMTP(FakeSMTP):
        def send_message(self, message):
            raise error

    monkeypatch.setattr("mailer.smtplib.SMTP", BrokenSMTP)
    outcome = _configured().send("a@b.com", "subject", "body")
    assert outcome.status is DeliveryStatus.FAILED
    assert outcome.reason


def test_outcome_dict_round_trip():
    outcome = DeliveryOutcome(DeliveryStatus.FAILED, "timeout")
    assert DeliveryOutcome.from_dict(outcome.to_dict()) == outcome
