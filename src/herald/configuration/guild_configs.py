"""
Validated per-guild configuration records.

Every record is an immutable value keyed by guild id. Loosely typed payloads
(dashboard JSON, slash command arguments) enter through ``from_payload`` which
either returns a complete record or raises :class:`ConfigValidationError`
listing every rejected field, so nothing downstream ever sees a half-valid
configuration.

Payload keys are accepted in the dashboard's camelCase form
(``logChannelId``) as well as snake_case (``log_channel_id``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Tuple

from herald.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, SnowflakeID
from herald.errors import ConfigValidationError

DEFAULT_WELCOME_MESSAGE = "Welcome to @server, @username!"
DEFAULT_TEXT_COLOR = "#FFFFFF"

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_GUILD_KEYS = ("guildId", "serverId", "guild_id", "server_id")

Problems = List[Tuple[str, str]]


class ConfigKind(Enum):
    """The configuration families cached per guild."""

    LOGGING = "logging"
    WELCOME = "welcome"
    AUTO_ROLE = "auto_role"


class BackgroundChoice(Enum):
    """Background options for the welcome image."""

    DEFAULT = "default"
    FOREST = "forest"
    CITY = "city"
    ABSTRACT = "abstract"
    CUSTOM = "custom"


# -------- payload helpers --------

def _pick(payload: Mapping[str, Any], aliases: Iterable[str]) -> Tuple[bool, Any]:
    for key in aliases:
        if key in payload:
            return True, payload[key]
    return False, None


def _bool_field(payload: Mapping[str, Any], name: str, aliases: Iterable[str], current: bool, problems: Problems) -> bool:
    found, value = _pick(payload, aliases)
    if not found:
        return current
    if not isinstance(value, bool):
        problems.append((name, f"expected a boolean, got {type(value).__name__}"))
        return current
    return value


def _id_field(
    payload: Mapping[str, Any],
    name: str,
    aliases: Iterable[str],
    id_type: type[SnowflakeID],
    current: Optional[SnowflakeID],
    problems: Problems,
) -> Optional[SnowflakeID]:
    found, value = _pick(payload, aliases)
    if not found:
        return current
    if value is None or value == "":
        return None
    try:
        return id_type(value)
    except ValueError as exc:
        problems.append((name, str(exc)))
        return current


def _text_field(
    payload: Mapping[str, Any],
    name: str,
    aliases: Iterable[str],
    current: Optional[str],
    problems: Problems,
    *,
    nullable: bool = False,
) -> Optional[str]:
    found, value = _pick(payload, aliases)
    if not found:
        return current
    if value is None and nullable:
        return None
    if not isinstance(value, str):
        problems.append((name, f"expected a string, got {type(value).__name__}"))
        return current
    if nullable and not value.strip():
        return None
    return value


def _guild_from_payload(payload: Mapping[str, Any], base: Any, problems: Problems) -> Optional[GuildID]:
    found, value = _pick(payload, _GUILD_KEYS)
    base_guild = base.guild_id if base is not None else None
    if not found:
        if base_guild is None:
            problems.append(("guild_id", "missing guild id"))
        return base_guild
    try:
        guild_id = GuildID(value)
    except ValueError as exc:
        problems.append(("guild_id", str(exc)))
        return base_guild
    if base_guild is not None and guild_id != base_guild:
        problems.append(("guild_id", f"payload guild {guild_id} does not match record guild {base_guild}"))
    return guild_id


def payload_guild_id(payload: Mapping[str, Any]) -> Optional[GuildID]:
    """Guild id named by ``payload``, or None when it is missing or unusable."""
    found, value = _pick(payload, _GUILD_KEYS)
    if not found:
        return None
    try:
        return GuildID(value)
    except ValueError:
        return None


def parse_text_color(value: Any, problems: Problems, current: str = DEFAULT_TEXT_COLOR) -> str:
    if not isinstance(value, str) or not _HEX_COLOR.match(value.strip()):
        problems.append(("text_color", f"expected a hex colour like #FFFFFF, got {value!r}"))
        return current
    return value.strip()


def parse_background(value: Any, problems: Problems, current: BackgroundChoice = BackgroundChoice.DEFAULT) -> BackgroundChoice:
    if isinstance(value, BackgroundChoice):
        return value
    try:
        return BackgroundChoice(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(choice.value for choice in BackgroundChoice)
        problems.append(("background_choice", f"expected one of {choices}, got {value!r}"))
        return current


# -------- records --------

@dataclass(frozen=True, slots=True)
class EventToggles:
    """Per-event switches of the logging feature."""

    message_deletions: bool = False
    message_edits: bool = False
    roles_added: bool = False
    user_bans: bool = False
    user_leaves: bool = False

    @classmethod
    def all_on(cls) -> "EventToggles":
        return cls(True, True, True, True, True)


_TOGGLE_KEYS: Dict[str, Tuple[str, ...]] = {
    "message_deletions": ("logMessageDeletions", "log_message_deletions", "message_deletions"),
    "message_edits": ("logMessageEdits", "log_message_edits", "message_edits"),
    "roles_added": ("logRolesAdded", "log_roles_added", "roles_added"),
    "user_bans": ("logUserBans", "log_user_bans", "user_bans"),
    "user_leaves": ("logUserLeaves", "log_user_leaves", "user_leaves"),
}


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and which guild events are logged."""

    kind: ClassVar[ConfigKind] = ConfigKind.LOGGING

    guild_id: GuildID
    enabled: bool = False
    log_channel_id: Optional[ChannelID] = None
    toggles: EventToggles = field(default_factory=EventToggles)
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "guild_id", GuildID(self.guild_id))
        if self.log_channel_id is not None:
            object.__setattr__(self, "log_channel_id", ChannelID(self.log_channel_id))

    @classmethod
    def disabled(cls, guild_id: GuildID | str) -> "LoggingConfig":
        """The record reported for a guild that never saved logging settings."""
        return cls(guild_id=GuildID(guild_id))

    @classmethod
    def for_command(cls, guild_id: GuildID | str, channel_id: ChannelID | str) -> "LoggingConfig":
        """The record created by ``/set-logs``: everything on, logs in the invoking channel."""
        return cls(
            guild_id=GuildID(guild_id),
            enabled=True,
            log_channel_id=ChannelID(channel_id),
            toggles=EventToggles.all_on(),
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, base: Optional["LoggingConfig"] = None) -> "LoggingConfig":
        """Validate ``payload``; fields it omits are taken from ``base`` or the defaults."""
        problems: Problems = []
        guild_id = _guild_from_payload(payload, base, problems)
        current = base or (cls.disabled(guild_id) if guild_id is not None else None)

        enabled = _bool_field(payload, "enabled", ("enabled",), current.enabled if current else False, problems)
        channel = _id_field(
            payload, "log_channel_id", ("logChannelId", "log_channel_id"), ChannelID,
            current.log_channel_id if current else None, problems,
        )

        toggles_source = current.toggles if current else EventToggles()
        nested = payload.get("perEventToggles") or payload.get("toggles")
        flat: Mapping[str, Any] = payload
        if isinstance(nested, Mapping):
            flat = {**nested, **payload}
        toggle_values = {
            name: _bool_field(flat, name, aliases, getattr(toggles_source, name), problems)
            for name, aliases in _TOGGLE_KEYS.items()
        }

        if problems:
            raise ConfigValidationError(problems)

        return cls(
            guild_id=guild_id,
            enabled=enabled,
            log_channel_id=channel,
            toggles=EventToggles(**toggle_values),
            record_id=current.record_id if current else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "guildId": str(self.guild_id),
            "enabled": self.enabled,
            "logChannelId": str(self.log_channel_id) if self.log_channel_id else None,
            "logMessageDeletions": self.toggles.message_deletions,
            "logMessageEdits": self.toggles.message_edits,
            "logRolesAdded": self.toggles.roles_added,
            "logUserBans": self.toggles.user_bans,
            "logUserLeaves": self.toggles.user_leaves,
        }


@dataclass(frozen=True, slots=True)
class WelcomeImageOptions:
    """The part of a welcome configuration the image renderer looks at."""

    background_choice: BackgroundChoice | str = BackgroundChoice.DEFAULT
    custom_background_url: Optional[str] = None
    text_color: str = DEFAULT_TEXT_COLOR

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WelcomeImageOptions":
        """Build render options from a partial dashboard config, as used by the preview endpoint."""
        problems: Problems = []
        found, background = _pick(payload, ("backgroundImage", "backgroundChoice", "background_choice"))
        choice = parse_background(background, problems) if found else BackgroundChoice.DEFAULT
        found, color = _pick(payload, ("textColor", "text_color"))
        text_color = parse_text_color(color, problems) if found else DEFAULT_TEXT_COLOR
        custom = _text_field(payload, "custom_background_url", ("customBackgroundUrl", "custom_background_url"), None, problems, nullable=True)
        if problems:
            raise ConfigValidationError(problems)
        return cls(background_choice=choice, custom_background_url=custom, text_color=text_color)


@dataclass(frozen=True, slots=True)
class WelcomeConfig:
    """Welcome message and image settings of a guild."""

    kind: ClassVar[ConfigKind] = ConfigKind.WELCOME

    guild_id: GuildID
    enabled: bool = False
    welcome_channel_id: Optional[ChannelID] = None
    message_template: str = DEFAULT_WELCOME_MESSAGE
    include_image: bool = True
    background_choice: BackgroundChoice = BackgroundChoice.DEFAULT
    custom_background_url: Optional[str] = None
    text_color: str = DEFAULT_TEXT_COLOR
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "guild_id", GuildID(self.guild_id))
        if self.welcome_channel_id is not None:
            object.__setattr__(self, "welcome_channel_id", ChannelID(self.welcome_channel_id))
        if not isinstance(self.background_choice, BackgroundChoice):
            object.__setattr__(self, "background_choice", BackgroundChoice(self.background_choice))

    @property
    def image_options(self) -> WelcomeImageOptions:
        return WelcomeImageOptions(
            background_choice=self.background_choice,
            custom_background_url=self.custom_background_url,
            text_color=self.text_color,
        )

    @classmethod
    def disabled(cls, guild_id: GuildID | str) -> "WelcomeConfig":
        return cls(guild_id=GuildID(guild_id))

    @classmethod
    def for_command(cls, guild_id: GuildID | str, channel_id: ChannelID | str) -> "WelcomeConfig":
        return cls(guild_id=GuildID(guild_id), enabled=True, welcome_channel_id=ChannelID(channel_id))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, base: Optional["WelcomeConfig"] = None) -> "WelcomeConfig":
        """Validate ``payload``; fields it omits are taken from ``base`` or the defaults."""
        problems: Problems = []
        guild_id = _guild_from_payload(payload, base, problems)
        current = base or (cls.disabled(guild_id) if guild_id is not None else cls(guild_id=GuildID("0")))

        enabled = _bool_field(payload, "enabled", ("enabled",), current.enabled, problems)
        channel = _id_field(
            payload, "welcome_channel_id", ("welcomeChannelId", "welcome_channel_id"), ChannelID,
            current.welcome_channel_id, problems,
        )
        template = _text_field(
            payload, "message_template", ("welcomeMessage", "messageTemplate", "message_template"),
            current.message_template, problems,
        )
        include_image = _bool_field(payload, "include_image", ("includeImage", "include_image"), current.include_image, problems)

        background = current.background_choice
        found, value = _pick(payload, ("backgroundImage", "backgroundChoice", "background_choice"))
        if found:
            background = parse_background(value, problems, current.background_choice)

        custom_url = _text_field(
            payload, "custom_background_url", ("customBackgroundUrl", "custom_background_url"),
            current.custom_background_url, problems, nullable=True,
        )

        text_color = current.text_color
        found, value = _pick(payload, ("textColor", "text_color"))
        if found:
            text_color = parse_text_color(value, problems, current.text_color)

        if problems:
            raise ConfigValidationError(problems)

        return cls(
            guild_id=guild_id,
            enabled=enabled,
            welcome_channel_id=channel,
            message_template=template,
            include_image=include_image,
            background_choice=background,
            custom_background_url=custom_url,
            text_color=text_color,
            record_id=current.record_id,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "guildId": str(self.guild_id),
            "enabled": self.enabled,
            "welcomeChannelId": str(self.welcome_channel_id) if self.welcome_channel_id else None,
            "welcomeMessage": self.message_template,
            "includeImage": self.include_image,
            "backgroundImage": self.background_choice.value,
            "customBackgroundUrl": self.custom_background_url,
            "textColor": self.text_color,
        }


def _dedupe_roles(role_ids: Iterable[RoleID | str | int]) -> Tuple[RoleID, ...]:
    seen: Dict[RoleID, None] = {}
    for role_id in role_ids:
        seen.setdefault(RoleID(role_id), None)
    return tuple(seen)


@dataclass(frozen=True, slots=True)
class AutoRoleConfig:
    """Roles granted automatically to every member who joins.

    ``role_ids`` never contains duplicates; the first occurrence keeps its position.
    """

    kind: ClassVar[ConfigKind] = ConfigKind.AUTO_ROLE

    guild_id: GuildID
    enabled: bool = False
    role_ids: Tuple[RoleID, ...] = ()
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "guild_id", GuildID(self.guild_id))
        object.__setattr__(self, "role_ids", _dedupe_roles(self.role_ids))

    @classmethod
    def disabled(cls, guild_id: GuildID | str) -> "AutoRoleConfig":
        return cls(guild_id=GuildID(guild_id))

    @classmethod
    def for_command(cls, guild_id: GuildID | str) -> "AutoRoleConfig":
        return cls(guild_id=GuildID(guild_id), enabled=True)

    def with_role(self, role_id: RoleID | str) -> "AutoRoleConfig":
        return replace(self, role_ids=self.role_ids + (RoleID(role_id),))

    def without_role(self, role_id: RoleID | str) -> "AutoRoleConfig":
        target = RoleID(role_id)
        return replace(self, role_ids=tuple(r for r in self.role_ids if r != target))

    def toggled(self) -> "AutoRoleConfig":
        return replace(self, enabled=not self.enabled)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, base: Optional["AutoRoleConfig"] = None) -> "AutoRoleConfig":
        problems: Problems = []
        guild_id = _guild_from_payload(payload, base, problems)
        current = base or (cls.disabled(guild_id) if guild_id is not None else None)

        enabled = _bool_field(payload, "enabled", ("enabled",), current.enabled if current else False, problems)
        role_ids: Tuple[RoleID, ...] = current.role_ids if current else ()
        found, value = _pick(payload, ("roleIds", "role_ids"))
        if found:
            if not isinstance(value, (list, tuple)):
                problems.append(("role_ids", f"expected a list of role ids, got {type(value).__name__}"))
            else:
                try:
                    role_ids = _dedupe_roles(value)
                except ValueError as exc:
                    problems.append(("role_ids", str(exc)))

        if problems:
            raise ConfigValidationError(problems)

        return cls(
            guild_id=guild_id,
            enabled=enabled,
            role_ids=role_ids,
            record_id=current.record_id if current else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "guildId": str(self.guild_id),
            "enabled": self.enabled,
            "roleIds": [str(role_id) for role_id in self.role_ids],
        }


@dataclass(frozen=True, slots=True)
class ChannelRecord:
    """Cached directory entry used to fill the dashboard's channel pickers."""

    channel_id: ChannelID
    guild_id: GuildID
    name: str
    type: str = "text"

    def __post_init__(self) -> None:
        object.__setattr__(self, "channel_id", ChannelID(self.channel_id))
        object.__setattr__(self, "guild_id", GuildID(self.guild_id))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": str(self.channel_id),
            "guildId": str(self.guild_id),
            "name": self.name,
            "type": self.type,
        }


GuildConfig = LoggingConfig | WelcomeConfig | AutoRoleConfig
