"""Tests for recipient filtering, the Notifier and both mail transports."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from civicwatch.core.config import Settings
from civicwatch.core.exceptions import DeliveryError, NoValidRecipientsError
from civicwatch.models.authority_model import Authority
from civicwatch.services.email_service import (
    Notifier,
    OutgoingEmail,
    SendGridMailTransport,
    SmtpMailTransport,
    create_mail_transport,
)
from civicwatch.utils.validators import clean_recipients, validate_email
from tests.conftest import make_authority
from tests.fakes import FakeMailTransport


def _authorities(*emails):
    return [Authority.model_validate(make_authority(f"a{i}", e)) for i, e in enumerate(emails)]


def _email():
    return OutgoingEmail(
        from_email="alerts@civicwatch.app",
        recipients=["a@city.gov", "b@city.gov"],
        subject="Civic Issue Report: Garbage - Pune, MH",
        text="Dear Sir/Madam,",
    )


class TestRecipients:
    def test_clean_recipients_trims_and_drops_empty(self):
        assert clean_recipients([" a@city.gov ", "", None, "   ", "b@city.gov"]) == ["a@city.gov", "b@city.gov"]

    def test_validate_email(self):
        assert validate_email("roads@springfield.gov")
        assert not validate_email("not-an-address")
        assert not validate_email(None)


class TestNotifier:
    async def test_sends_single_joint_message(self):
        transport = FakeMailTransport()
        notifier = Notifier(transport, from_email="alerts@civicwatch.app")

        recipients = await notifier.notify("Subject", "Body", _authorities(" a@city.gov", "", "b@city.gov "))

        assert recipients == ["a@city.gov", "b@city.gov"]
        assert len(transport.sent) == 1
        sent = transport.sent[0]
        assert sent.to_header == "a@city.gov, b@city.gov"
        assert sent.from_email == "alerts@civicwatch.app"
        assert sent.subject == "Subject"
        assert sent.text == "Body"

    async def test_all_empty_emails_raise_without_sending(self):
        transport = FakeMailTransport()
        notifier = Notifier(transport, from_email="alerts@civicwatch.app")

        with pytest.raises(NoValidRecipientsError, match="No valid recipients"):
            await notifier.notify("Subject", "Body", _authorities("", "  "))

        assert transport.sent == []

    async def test_no_authorities_raise(self):
        notifier = Notifier(FakeMailTransport(), from_email="alerts@civicwatch.app")

        with pytest.raises(NoValidRecipientsError):
            await notifier.notify("Subject", "Body", [])

    async def test_transport_error_propagates(self):
        notifier = Notifier(FakeMailTransport(error=DeliveryError("535 auth failed")), from_email="x@y.org")

        with pytest.raises(DeliveryError, match="535"):
            await notifier.notify("Subject", "Body", _authorities("a@city.gov"))

    async def test_dry_run_skips_transport(self):
        transport = FakeMailTransport()
        notifier = Notifier(transport, from_email="alerts@civicwatch.app", dry_run=True)

        recipients = await notifier.notify("Subject", "Body", _authorities("a@city.gov"))

        assert recipients == ["a@city.gov"]
        assert transport.sent == []

    async def test_dry_run_still_validates_recipients(self):
        notifier = Notifier(FakeMailTransport(), from_email="alerts@civicwatch.app", dry_run=True)

        with pytest.raises(NoValidRecipientsError):
            await notifier.notify("Subject", "Body", _authorities(""))


class TestSmtpMailTransport:
    @patch("civicwatch.services.email_service.smtplib.SMTP")
    async def test_send_uses_starttls_and_login(self, mock_smtp):
        server = mock_smtp.return_value.__enter__.return_value
        transport = SmtpMailTransport("smtp.example.org", 587, "user", "secret")

        await transport.send(_email())

        mock_smtp.assert_called_once_with("smtp.example.org", 587, timeout=30.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "secret")
        server.send_message.assert_called_once()
        message = server.send_message.call_args.args[0]
        assert message["To"] == "a@city.gov, b@city.gov"
        assert message["From"] == "alerts@civicwatch.app"
        assert message["Subject"] == "Civic Issue Report: Garbage - Pune, MH"
        assert server.send_message.call_args.kwargs["to_addrs"] == ["a@city.gov", "b@city.gov"]

    @patch("civicwatch.services.email_service.smtplib.SMTP")
    async def test_no_login_without_user(self, mock_smtp):
        server = mock_smtp.return_value.__enter__.return_value
        transport = SmtpMailTransport("localhost", 25, use_tls=False)

        await transport.send(_email())

        server.starttls.assert_not_called()
        server.login.assert_not_called()

    @patch("civicwatch.services.email_service.smtplib.SMTP")
    async def test_smtp_error_becomes_delivery_error(self, mock_smtp):
        server = mock_smtp.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        transport = SmtpMailTransport("smtp.example.org", 587, "user", "wrong")

        with pytest.raises(DeliveryError, match="SMTP send"):
            await transport.send(_email())


class TestSendGridMailTransport:
    @patch("civicwatch.services.email_service.SendGridAPIClient")
    async def test_send_single_personalization(self, mock_client):
        mock_client.return_value.send.return_value = MagicMock(status_code=202)
        transport = SendGridMailTransport("SG.test")

        await transport.send(_email())

        mock_client.assert_called_once_with("SG.test")
        message = mock_client.return_value.send.call_args.args[0]
        payload = message.get()
        assert len(payload["personalizations"]) == 1
        assert [to["email"] for to in payload["personalizations"][0]["to"]] == ["a@city.gov", "b@city.gov"]
        assert payload["from"]["email"] == "alerts@civicwatch.app"

    @patch("civicwatch.services.email_service.SendGridAPIClient")
    async def test_non_success_status_raises(self, mock_client):
        mock_client.return_value.send.return_value = MagicMock(status_code=500)
        transport = SendGridMailTransport("SG.test")

        with pytest.raises(DeliveryError, match="500"):
            await transport.send(_email())

    async def test_missing_key_raises(self):
        with pytest.raises(DeliveryError, match="not configured"):
            await SendGridMailTransport(None).send(_email())


class TestCreateMailTransport:
    def test_smtp_is_default(self):
        transport = create_mail_transport(Settings(smtp_host="mail.city.gov", smtp_port=2525))
        assert isinstance(transport, SmtpMailTransport)
        assert (transport.host, transport.port) == ("mail.city.gov", 2525)

    def test_sendgrid_backend(self):
        transport = create_mail_transport(Settings(mail_backend="sendgrid", sendgrid_api_key="SG.x"))
        assert isinstance(transport, SendGridMailTransport)

    def test_unknown_backend_falls_back_to_smtp(self):
        assert isinstance(create_mail_transport(Settings(mail_backend="pigeon")), SmtpMailTransport)
