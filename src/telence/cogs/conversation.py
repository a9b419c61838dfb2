"""Discord front end: stores channel messages and answers mentions and DMs."""

from __future__ import annotations

import logging

import discord
from discord.ext import commands

from telence.pipeline import ConversationPipeline
from telence.utils.discord_utils import get_display_name, send_long_message

_LOG = logging.getLogger(__name__)

_MESSAGE_CHUNK = 1900  # Discord rejects messages over 2000 chars; leave room for the [i/n] suffix
_COMMAND_PREFIX = "!"


class ConversationCog(commands.Cog):
    """Chat with the configured LLM using the stored channel history."""

    def __init__(
        self,
        bot: commands.Bot,
        pipeline: ConversationPipeline,
        *,
        max_length: int = _MESSAGE_CHUNK,
    ) -> None:
        self.bot = bot
        self.pipeline = pipeline
        self.max_length = max_length

    def _should_respond(self, message: discord.Message) -> bool:
        # In servers only answer when mentioned; DMs always get a reply.
        if message.guild is None:
            return True
        return self.bot.user is not None and self.bot.user in message.mentions

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or not message.content:
            return
        if message.content.lstrip().startswith(_COMMAND_PREFIX):
            return
        if not self.pipeline.accepting:
            return

        channel_id = message.channel.id
        self.pipeline.record_message(
            channel_id,
            message.author.id,
            get_display_name(message.author),
            message.clean_content,
        )
        if not self._should_respond(message):
            return

        _LOG.info("Responding in channel %s to %s", channel_id, message.author)
        try:
            async with message.channel.typing():
                reply = await self.pipeline.respond(channel_id)
            if reply:
                await send_long_message(message.channel, reply, self.max_length)
        except discord.HTTPException:
            _LOG.exception("Failed to deliver reply in channel %s", channel_id)

    @commands.command(name="start")
    async def start_command(self, ctx: commands.Context) -> None:
        """Greet the user."""
        await ctx.send("Hello! I'm your AI bot. Ask me anything!")

    @commands.command(name="summary")
    async def summary_command(self, ctx: commands.Context, *, argument: str | None = None) -> None:
        """Summarize recent messages.

        Usage: !summary <number of messages | time period (e.g., 1h)>
        """
        _LOG.info("%s requested summary in channel %s", ctx.author, ctx.channel.id)
        outcome = await self.pipeline.summarize(ctx.channel.id, argument)
        await send_long_message(ctx, outcome.text, self.max_length)

    @commands.command(name="reset")
    async def reset_command(self, ctx: commands.Context) -> None:
        """Forget the stored history of this channel."""
        await ctx.send(self.pipeline.reset(ctx.channel.id))


async def setup(bot: commands.Bot) -> None:
    pipeline = getattr(bot, "pipeline", None)
    if pipeline is None:
        raise RuntimeError("bot.pipeline must be set before loading the conversation cog")
    await bot.add_cog(ConversationCog(bot, pipeline))
