import pytest
from pydantic import ValidationError

from ticket_bridge.models.job import MalformedJobError, OutgoingJob
from ticket_bridge.settings import Settings
from ticket_bridge.utils.commands import CLOSE, OPEN, Command, parse_command, summarize_subject
from ticket_bridge.utils.recipients import normalize_recipient


@pytest.mark.parametrize(
    "text, expected",
    [
        ("@close tkt1a2b-3", Command(CLOSE, "TKT1A2B-3")),
        ("  @CLOSE   TKT1A2B-3 thanks", Command(CLOSE, "TKT1A2B-3")),
        ("@close", Command(CLOSE, None)),
        ("please @Support my login fails", Command(OPEN)),
        ("hello there", None),
        ("can you @close TKT-1", None),
    ],
)
def test_parse_command(text, expected):
    assert parse_command(text) == expected


def test_parse_command_uses_configured_directives():
    assert parse_command("!done X-1", close_directive="!done") == Command(CLOSE, "X-1")
    assert parse_command("need !help", open_directive="!help") == Command(OPEN)


def test_summarize_subject():
    assert summarize_subject("short", 50) == "short"
    assert summarize_subject("a" * 51, 50) == "a" * 50 + "..."


@pytest.mark.parametrize(
    "destination, expected",
    [
        ("120363@g.us", "120363@g.us"),
        ("+55 (11) 99999-0000", "5511999990000@s.whatsapp.net"),
        ("5511999990000@s.whatsapp.net", "5511999990000@s.whatsapp.net"),
    ],
)
def test_normalize_recipient(destination, expected):
    assert normalize_recipient(destination) == expected


def test_normalize_recipient_without_digits():
    with pytest.raises(ValueError):
        normalize_recipient("support team")


def test_outgoing_job_decode_rejects_bad_payloads():
    with pytest.raises(MalformedJobError):
        OutgoingJob.decode("not json")
    with pytest.raises(MalformedJobError):
        OutgoingJob.decode('{"to": "1@g.us", "text": ""}')


def test_settings_require_shorter_conversation_cooldown():
    with pytest.raises(ValidationError):
        Settings(conversation_cooldown_seconds=60, sender_cooldown_seconds=60)


def test_send_interval_from_rate():
    assert Settings(global_rate_limit_per_second=4).send_interval_seconds == 0.25


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("GLOBAL_RATE_LIMIT_PER_SECOND", "2")
    monkeypatch.setenv("TICKET_CODE_PREFIX", "SUP")
    monkeypatch.setenv("RUN_WORKERS", "yes")
    monkeypatch.setenv("BOT_ID", " ")

    settings = Settings.from_env()

    assert settings.global_rate_limit_per_second == 2
    assert settings.ticket_code_prefix == "SUP"
    assert settings.run_workers is True
    assert settings.bot_id is None
