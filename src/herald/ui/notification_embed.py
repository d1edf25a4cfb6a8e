"""
Embed creation for log notifications.

Turns the library-independent :class:`Notification` produced by the formatter
into a ``discord.Embed``.
"""

import discord

from herald.notifications.notification_types import Notification, NotificationColor

# Color mapping for notification categories
NOTIFICATION_COLORS = {
    NotificationColor.RED: discord.Color.red(),
    NotificationColor.GOLD: discord.Color.gold(),
    NotificationColor.GREEN: discord.Color.green(),
    NotificationColor.DARK_RED: discord.Color.dark_red(),
    NotificationColor.GREY: discord.Color.lighter_grey(),
}


def build_notification_embed(notification: Notification) -> discord.Embed:
    """
    Create the embed for a log notification.

    Args:
        notification: Formatted notification

    Returns:
        discord.Embed: Title, colour, timestamp and fields in order, plus the
            title link and thumbnail when the notification carries them.
    """
    embed = discord.Embed(
        title=notification.title,
        color=NOTIFICATION_COLORS.get(notification.color, discord.Color.default()),
        timestamp=notification.timestamp,
        url=notification.url,
    )

    for field in notification.fields:
        embed.add_field(name=field.name, value=field.value, inline=field.inline)

    if notification.thumbnail_url:
        embed.set_thumbnail(url=notification.thumbnail_url)

    return embed
