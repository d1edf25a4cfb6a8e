"""Tests for the pure event -> notification formatter."""

from datetime import datetime, timedelta, timezone

import pytest

from herald.configuration.guild_configs import EventToggles, LoggingConfig
from herald.dispatch.events import (
    EventKind,
    MemberBannedEvent,
    MemberJoinedEvent,
    MemberLeftEvent,
    MemberRolesUpdatedEvent,
    MessageDeletedEvent,
    MessageEditedEvent,
    UserInfo,
)
from herald.errors import MalformedEventError
from herald.notifications.formatter import NO_CONTENT, format_event, is_event_enabled
from herald.notifications.notification_types import NotificationColor
from herald.util.format_utils import EMBED_FIELD_LIMIT

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
ALICE = UserInfo(user_id="U1", tag="alice#0001", avatar_url="https://cdn.example/alice.png")
BOT = UserInfo(user_id="U2", tag="robot#0000", is_bot=True)


@pytest.fixture
def config():
    return LoggingConfig.for_command("G1", "C1")


def test_scenario_ban_notification():
    config = LoggingConfig(guild_id="G1", enabled=True, log_channel_id="C1", toggles=EventToggles(user_bans=True))
    event = MemberBannedEvent(guild_id="G1", user=ALICE, reason="spam")

    notification = format_event(event, config, now=NOW)

    assert notification.title == "User Banned"
    assert notification.color is NotificationColor.DARK_RED
    assert notification.channel_id == "C1"
    assert notification.field("User").value == "alice#0001"
    assert notification.field("ID").value == "U1"
    assert notification.field("Reason").value == "spam"
    assert notification.thumbnail_url == ALICE.avatar_url
    assert notification.timestamp == NOW


def test_ban_without_reason_has_no_reason_field(config):
    notification = format_event(MemberBannedEvent(guild_id="G1", user=ALICE), config, now=NOW)

    assert notification.field("Reason") is None


def test_scenario_roles_added_lists_only_new_roles(config):
    event = MemberRolesUpdatedEvent(guild_id="G1", member=ALICE, before_role_ids=("R1",), after_role_ids=("R1", "R2"))

    notification = format_event(event, config, now=NOW)

    assert notification.title == "Roles Added"
    assert notification.color is NotificationColor.GREEN
    assert notification.field("Added Roles").value == "<@&R2>"
    assert notification.field("User").value == "alice#0001"


def test_roles_added_keeps_display_order(config):
    event = MemberRolesUpdatedEvent(
        guild_id="G1", member=ALICE, before_role_ids=("R1",), after_role_ids=("R3", "R1", "R2")
    )

    notification = format_event(event, config, now=NOW)

    assert notification.field("Added Roles").value == "<@&R3>\n<@&R2>"


def test_many_added_roles_never_split_a_mention(config):
    added = tuple(str(100000000000000000 + n) for n in range(60))
    event = MemberRolesUpdatedEvent(guild_id="G1", member=ALICE, before_role_ids=(), after_role_ids=added)

    value = format_event(event, config, now=NOW).field("Added Roles").value

    assert len(value) <= 1024
    lines = value.split("\n")
    assert lines == [f"<@&{role_id}>" for role_id in added[: len(lines)]]


def test_role_removal_only_is_suppressed(config):
    event = MemberRolesUpdatedEvent(guild_id="G1", member=ALICE, before_role_ids=("R1", "R2"), after_role_ids=("R1",))

    assert format_event(event, config, now=NOW) is None


def test_message_deleted(config):
    event = MessageDeletedEvent(guild_id="G1", channel_id="C7", author=ALICE, content="hello")

    notification = format_event(event, config, now=NOW)

    assert notification.title == "Message Deleted"
    assert notification.color is NotificationColor.RED
    assert [f.name for f in notification.fields] == ["Author", "Channel", "Content"]
    assert notification.field("Channel").value == "<#C7>"
    assert notification.field("Content").value == "hello"


def test_message_deleted_without_content_or_author(config):
    event = MessageDeletedEvent(guild_id="G1", channel_id="C7")

    notification = format_event(event, config, now=NOW)

    assert notification.field("Author").value == "Unknown"
    assert notification.field("Content") is None


def test_long_content_is_truncated(config):
    event = MessageDeletedEvent(guild_id="G1", channel_id="C7", author=ALICE, content="x" * 5000)

    notification = format_event(event, config, now=NOW)

    assert len(notification.field("Content").value) == EMBED_FIELD_LIMIT


@pytest.mark.parametrize(
    "event",
    [
        MessageDeletedEvent(guild_id="G1", channel_id="C7", author=BOT, content="beep"),
        MessageDeletedEvent(guild_id="G1", channel_id="C7", author=ALICE, content="pinned", is_system=True),
        MessageEditedEvent(guild_id="G1", channel_id="C7", author=BOT, before_content="a", after_content="b"),
    ],
)
def test_bot_and_system_messages_are_suppressed(config, event):
    assert format_event(event, config, now=NOW) is None


def test_message_edited(config):
    event = MessageEditedEvent(
        guild_id="G1",
        channel_id="C7",
        author=ALICE,
        before_content="helo",
        after_content="hello",
        jump_url="https://discord.com/channels/G1/C7/M1",
    )

    notification = format_event(event, config, now=NOW)

    assert notification.title == "Message Edited"
    assert notification.color is NotificationColor.GOLD
    assert notification.url == event.jump_url
    assert notification.field("Before").value == "helo"
    assert notification.field("After").value == "hello"


def test_edit_with_unchanged_text_is_suppressed(config):
    event = MessageEditedEvent(guild_id="G1", channel_id="C7", author=ALICE, before_content="same", after_content="same")

    assert format_event(event, config, now=NOW) is None


def test_edit_from_empty_message_shows_placeholder(config):
    event = MessageEditedEvent(guild_id="G1", channel_id="C7", author=ALICE, before_content="", after_content="text")

    notification = format_event(event, config, now=NOW)

    assert notification.field("Before").value == NO_CONTENT


def test_member_left(config):
    joined = NOW - timedelta(days=3, hours=5, minutes=20)
    event = MemberLeftEvent(guild_id="G1", member=ALICE, joined_at=joined)

    notification = format_event(event, config, now=NOW)

    assert notification.title == "User Left"
    assert notification.color is NotificationColor.GREY
    assert notification.field("Joined Server").value == "2024-04-28 06:40:00 UTC"
    assert notification.field("Time in Server").value == "3 days, 5 hours"
    assert all(f.inline for f in notification.fields)


def test_member_left_short_stay_and_unknown_join(config):
    short = format_event(MemberLeftEvent(guild_id="G1", member=ALICE, joined_at=NOW - timedelta(hours=2)), config, now=NOW)
    unknown = format_event(MemberLeftEvent(guild_id="G1", member=ALICE), config, now=NOW)

    assert short.field("Time in Server").value == "2 hours"
    assert unknown.field("Joined Server").value == "Unknown"
    assert unknown.field("Time in Server").value == "Unknown"


def test_banned_member_leave_is_suppressed(config):
    event = MemberLeftEvent(guild_id="G1", member=ALICE, joined_at=NOW)

    assert format_event(event, config, banned_user_ids={"U1"}, now=NOW) is None
    assert format_event(event, config, banned_user_ids={"U9"}, now=NOW) is not None


@pytest.mark.parametrize(
    "config",
    [
        None,
        LoggingConfig(guild_id="G1", enabled=False, log_channel_id="C1", toggles=EventToggles.all_on()),
        LoggingConfig(guild_id="G1", enabled=True, log_channel_id="C1", toggles=EventToggles(user_leaves=True)),
        LoggingConfig(guild_id="G1", enabled=True, log_channel_id=None, toggles=EventToggles.all_on()),
    ],
)
def test_disabled_configurations_suppress(config):
    event = MemberBannedEvent(guild_id="G1", user=ALICE, reason="spam")

    assert format_event(event, config, now=NOW) is None


def test_event_without_guild_is_malformed(config):
    with pytest.raises(MalformedEventError):
        format_event(MemberBannedEvent(guild_id=None, user=ALICE), config, now=NOW)


def test_join_is_not_a_log_event(config):
    with pytest.raises(MalformedEventError):
        format_event(MemberJoinedEvent(guild_id="G1", guild_name="Acme", member=ALICE), config, now=NOW)


def test_is_event_enabled(config):
    assert is_event_enabled(config, EventKind.MEMBER_LEFT) is True
    assert is_event_enabled(config, EventKind.MEMBER_JOINED) is False
    assert is_event_enabled(None, EventKind.MEMBER_LEFT) is False


def test_timestamp_defaults_to_now(config):
    notification = format_event(MemberBannedEvent(guild_id="G1", user=ALICE), config)

    assert notification.timestamp.tzinfo is not None
    assert abs(datetime.now(timezone.utc) - notification.timestamp) < timedelta(minutes=1)
