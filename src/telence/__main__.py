# __main__.py
import asyncio
import logging
import signal

import discord
from discord.ext import commands
from dotenv import load_dotenv

from telence.config import BotConfig, load_config
from telence.errors import ConfigurationError
from telence.http_retry import HttpTransport
from telence.message_db import MessageStore
from telence.pipeline import ConversationPipeline
from telence.text_generators import get_text_generator

logger = logging.getLogger("telence")

SHUTDOWN_TIMEOUT = 10.0


class TelenceBot(commands.Bot):
    """Bot that owns the conversation pipeline for its lifetime."""

    def __init__(self, config: BotConfig, pipeline: ConversationPipeline):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(
            command_prefix="!",
            intents=intents,
            case_insensitive=True,
        )
        self.config = config
        self.pipeline = pipeline
        self._closing = False
        self._shutdown_tasks: set[asyncio.Task] = set()

    async def setup_hook(self) -> None:
        await self.load_extension("telence.cogs.conversation")

    async def on_ready(self):
        logger.info("Bot is ready. Logged in as %s (ID: %s)", self.user, self.user.id)

    def request_close(self) -> asyncio.Task:
        """Schedule ``close()`` from a signal handler, holding a reference to the task."""
        task = asyncio.ensure_future(self.close())
        self._shutdown_tasks.add(task)
        task.add_done_callback(self._shutdown_tasks.discard)
        return task

    async def close(self) -> None:
        if not self._closing:
            self._closing = True
            logger.info("Shutting down %s...", self.config.bot_name)
            await self.pipeline.shutdown(SHUTDOWN_TIMEOUT)
        await super().close()


def configure_logging(config: BotConfig) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"))
        logging.getLogger().addHandler(handler)


def build_bot(config: BotConfig) -> TelenceBot:
    store = MessageStore(config.db_path)
    store.init_db()
    transport = HttpTransport(
        retries=config.http_retries,
        delay=config.http_retry_delay,
        timeout=config.http_timeout,
    )
    generator = get_text_generator(config, transport)
    logger.info("LLM provider: %s, model: %s", config.provider.value, config.model_name)
    pipeline = ConversationPipeline.from_config(config, store, generator)
    return TelenceBot(config, pipeline)


async def main(config: BotConfig) -> None:
    bot = build_bot(config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.request_close)
        except NotImplementedError:  # pragma: no cover - Windows
            pass
    async with bot:
        logger.info("starting bot")
        await bot.start(config.discord_token)


def run() -> None:
    load_dotenv()
    try:
        config = load_config()
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc
    configure_logging(config)
    asyncio.run(main(config))


if __name__ == "__main__":
    run()
