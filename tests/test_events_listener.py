from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from herald.bot.cogs import events_listener
from herald.dispatch.event_dispatcher import DispatchOutcome
from herald.dispatch.events import MemberJoinedEvent, MessageDeletedEvent, MessageEditedEvent
from herald.errors import ConfigStoreError


class FakeInteractionResponded(Exception):
    pass


class FakeUser:
    def __init__(self, user_id=111, tag="alice#0001", bot=False):
        self.id = user_id
        self.bot = bot
        self.display_name = tag.split("#")[0]
        self.display_avatar = SimpleNamespace(url="https://cdn.example/a.png")
        self._tag = tag

    def __str__(self):
        return self._tag


class FakeMessage:
    def __init__(self, *, guild, content="hello", author=None):
        self.guild = guild
        self.content = content
        self.author = author or FakeUser()
        self.channel = SimpleNamespace(id=222)
        self.jump_url = "https://discord.com/jump"

    def is_system(self):
        return False


GUILD = SimpleNamespace(
    id=1,
    name="Acme",
    text_channels=[SimpleNamespace(id=10, name="general"), SimpleNamespace(id=11, name="logs")],
)


@pytest.fixture(autouse=True)
def patch_discord(monkeypatch):
    monkeypatch.setattr(events_listener.discord, "InteractionResponded", FakeInteractionResponded, raising=False)
    yield


@pytest.fixture
def fake_bot():
    return SimpleNamespace(
        user=SimpleNamespace(id=999),
        guilds=[GUILD],
        change_presence=AsyncMock(),
        add_cog=lambda cog: None,
    )


@pytest.fixture
def dispatcher():
    return SimpleNamespace(dispatch=AsyncMock(return_value=DispatchOutcome.DELIVERED))


@pytest.fixture
def config_service():
    return SimpleNamespace(register_guild=AsyncMock())


@pytest.fixture
def cog(fake_bot, dispatcher, config_service):
    return events_listener.EventsListenerCog(fake_bot, dispatcher, config_service, "Testing")


@pytest.mark.asyncio
async def test_on_ready_sets_presence_and_registers_guilds(cog, fake_bot, config_service):
    await cog.on_ready()

    fake_bot.change_presence.assert_awaited_once()
    activity = fake_bot.change_presence.await_args.kwargs["activity"]
    assert activity.name == "Testing"

    config_service.register_guild.assert_awaited_once()
    guild_id, name, channels = config_service.register_guild.await_args.args
    assert (guild_id, name) == ("1", "Acme")
    assert [c.channel_id for c in channels] == ["10", "11"]
    assert all(c.guild_id == "1" for c in channels)


@pytest.mark.asyncio
async def test_on_ready_without_user_skips_presence(cog, fake_bot):
    fake_bot.user = None

    await cog.on_ready()

    fake_bot.change_presence.assert_not_awaited()


@pytest.mark.asyncio
async def test_guild_registration_failure_is_logged_not_raised(cog, config_service):
    config_service.register_guild.side_effect = ConfigStoreError("database is locked")

    await cog.on_guild_join(GUILD)

    config_service.register_guild.assert_awaited_once()


@pytest.mark.asyncio
async def test_member_join_is_dispatched(cog, dispatcher):
    member = FakeUser()
    member.guild = GUILD

    await cog.on_member_join(member)

    event = dispatcher.dispatch.await_args.args[0]
    assert isinstance(event, MemberJoinedEvent)
    assert event.guild_name == "Acme"


@pytest.mark.asyncio
async def test_message_delete_is_dispatched(cog, dispatcher):
    await cog.on_message_delete(FakeMessage(guild=GUILD))

    event = dispatcher.dispatch.await_args.args[0]
    assert isinstance(event, MessageDeletedEvent)
    assert event.content == "hello"


@pytest.mark.asyncio
async def test_direct_messages_are_ignored(cog, dispatcher):
    await cog.on_message_delete(FakeMessage(guild=None))
    await cog.on_message_edit(FakeMessage(guild=None), FakeMessage(guild=None, content="edited"))

    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_message_edit_is_dispatched(cog, dispatcher):
    await cog.on_message_edit(FakeMessage(guild=GUILD, content="a"), FakeMessage(guild=GUILD, content="b"))

    event = dispatcher.dispatch.await_args.args[0]
    assert isinstance(event, MessageEditedEvent)
    assert (event.before_content, event.after_content) == ("a", "b")


@pytest.mark.asyncio
async def test_unconvertible_payload_is_dropped(cog, dispatcher):
    # A member object without a guild attribute cannot be converted
    await cog.on_member_remove(FakeUser())

    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_command_error_replies_to_invoker(cog):
    ctx = SimpleNamespace(command=SimpleNamespace(name="set-logs"), respond=AsyncMock())

    await cog.on_application_command_error(ctx, RuntimeError("boom"))

    ctx.respond.assert_awaited_once_with("There was an error while processing this command.", ephemeral=True)


@pytest.mark.asyncio
async def test_command_error_uses_followup_after_response(cog):
    ctx = SimpleNamespace(
        command=SimpleNamespace(name="welcomer"),
        respond=AsyncMock(side_effect=FakeInteractionResponded()),
        followup=SimpleNamespace(send=AsyncMock()),
    )

    await cog.on_application_command_error(ctx, RuntimeError("boom"))

    ctx.followup.send.assert_awaited_once_with("There was an error while processing this command.", ephemeral=True)


def test_setup_adds_cog(fake_bot, dispatcher, config_service):
    added = []
    fake_bot.add_cog = added.append

    events_listener.setup(fake_bot, dispatcher, config_service, "Testing")

    assert len(added) == 1
    assert isinstance(added[0], events_listener.EventsListenerCog)
