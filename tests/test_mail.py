import asyncio

from backoffice.features.mail.messages import MailMessage, WelcomeMessage
from backoffice.features.mail.outbox import MailOutbox
from backoffice.features.mail.transport import LogTransport, SmtpTransport, build_transport
from backoffice.features.users.auth import generate_password
from tests.factories import RecordingTransport


def test_welcome_message_renders_credentials():
    message = WelcomeMessage(to="jane@example.com", name="Jane <b>", password="S3cret!pass").render()

    assert message.to == "jane@example.com"
    assert message.subject.startswith("Welcome to ")
    assert "S3cret!pass" in message.html_body
    assert "Jane &lt;b&gt;" in message.html_body
    assert "Password: S3cret!pass" in message.text_body


def test_generated_passwords_mix_character_classes():
    for _ in range(20):
        password = generate_password()
        assert len(password) >= 12
        assert any(c.islower() for c in password)
        assert any(c.isupper() for c in password)
        assert any(c.isdigit() for c in password)
        assert any(not c.isalnum() for c in password)


def test_smtp_message_has_both_parts():
    transport = SmtpTransport(host="smtp.example.com", from_email="office@example.com")
    mime = transport.build(MailMessage(to="jane@example.com", subject="Hi", html_body="<p>Hi</p>", text_body="Hi"))

    assert mime["To"] == "jane@example.com"
    assert mime["From"] == "office@example.com"
    assert [part.get_content_type() for part in mime.get_payload()] == ["text/plain", "text/html"]


def test_log_transport_without_mail_host():
    assert isinstance(build_transport(), LogTransport)


async def test_drain_retries_until_delivered():
    transport = RecordingTransport(fail_times=2)
    outbox = MailOutbox(transport=transport, max_attempts=3, retry_delay=0)

    outbox.enqueue(WelcomeMessage(to="jane@example.com", name="Jane", password="S3cret!pass"))
    await outbox.drain()

    assert len(transport.sent) == 1
    assert transport.sent[0].attempts == 3
    assert outbox.failed == []


async def test_gives_up_after_max_attempts():
    transport = RecordingTransport(fail_times=5)
    outbox = MailOutbox(transport=transport, max_attempts=2, retry_delay=0)

    outbox.enqueue(MailMessage(to="jane@example.com", subject="Hi", html_body="", text_body=""))
    await outbox.drain()

    assert transport.sent == []
    assert [m.to for m in outbox.failed] == ["jane@example.com"]


async def test_worker_sends_in_background():
    transport = RecordingTransport(fail_times=1)
    outbox = MailOutbox(transport=transport, max_attempts=3, retry_delay=0)
    outbox.start()
    try:
        outbox.enqueue(MailMessage(to="jane@example.com", subject="Hi", html_body="", text_body=""))
        for _ in range(100):
            if transport.sent:
                break
            await asyncio.sleep(0.01)
    finally:
        await outbox.stop()

    assert [m.to for m in transport.sent] == ["jane@example.com"]


class BrokenWelcome(WelcomeMessage):
    def render(self) -> MailMessage:
        raise RuntimeError("template missing")


async def test_enqueue_defers_rendering_to_the_worker():
    transport = RecordingTransport()
    outbox = MailOutbox(transport=transport, max_attempts=3, retry_delay=0)
    broken = BrokenWelcome(to="jane@example.com", name="Jane", password="S3cret!pass")

    outbox.enqueue(broken)
    outbox.enqueue(WelcomeMessage(to="john@example.com", name="John", password="S3cret!pass"))
    await outbox.drain()

    assert outbox.failed == [broken]
    assert [m.to for m in transport.sent] == ["john@example.com"]
