"""Process entry point: database, session pollers, chat bot and HTTP API on one loop."""

import asyncio
import logging

import uvicorn

from soulxbot.api.app import create_app
from soulxbot.api.dependencies import Services
from soulxbot.core.config import Settings, get_settings
from soulxbot.core.database import DatabaseManager, setup_database_schema
from soulxbot.core.logging import setup_logging
from soulxbot.repositories import (
    ExclusionRepository,
    QuestionRepository,
    SessionRepository,
    UserRepository,
)
from soulxbot.services import (
    FirstRaceResolver,
    QuestionService,
    RegistrationService,
    SessionPoller,
    TwitchAPIClient,
)
from soulxbot.twitch.bot import Bot
from soulxbot.twitch.components import FirstCommands, QuestionCommands
from soulxbot.twitch.dispatch import CommandRegistry
from soulxbot.twitch.router import MessageRouter

LOGGER: logging.Logger = logging.getLogger("soulxbot")


async def runner(settings: Settings) -> None:
    db = DatabaseManager(settings.database_url, ssl=settings.database_ssl)
    await db.connect()
    async with db.pool.acquire() as connection:
        await setup_database_schema(connection)

    users = UserRepository(db.pool)
    sessions = SessionRepository(db.pool)
    questions = QuestionRepository(db.pool)
    exclusions = ExclusionRepository(db.pool)

    twitch_api = TwitchAPIClient(
        settings.client_id,
        settings.client_secret,
        redirect_uri=settings.oauth_redirect_uri,
        credentials=users,
        passphrase=settings.token_passphrase,
    )
    poller = SessionPoller(sessions, users, twitch_api, interval=settings.poll_interval_seconds)

    bot = Bot(settings=settings, users=users)
    question_service = QuestionService(questions, sessions)
    registry = CommandRegistry(production=settings.is_production, prefix=settings.command_prefix)
    registry.register_all(
        FirstCommands(
            users=users, sessions=sessions, exclusions=exclusions, twitch=twitch_api, chat=bot
        ).commands()
    )
    registry.register_all(QuestionCommands(questions=question_service, chat=bot).commands())
    bot.router = MessageRouter(
        bot_id=settings.bot_id,
        users=users,
        sessions=sessions,
        first_race=FirstRaceResolver(sessions, exclusions, bot),
        registry=registry,
    )
    LOGGER.info(f"Registered commands: {', '.join(registry.tokens)}")

    registration = RegistrationService(
        users, twitch_api, passphrase=settings.token_passphrase, on_registered=bot.on_registered
    )
    app = create_app(
        Services(
            settings=settings,
            poller=poller,
            registration=registration,
            questions=question_service,
            database=db,
        )
    )
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    )

    await poller.restart_open_sessions()

    try:
        async with bot:
            await asyncio.gather(bot.start(with_adapter=False), server.serve())
    finally:
        await poller.shutdown()
        await twitch_api.close()
        await db.disconnect()


def main() -> None:
    settings = get_settings()
    setup_logging(settings)
    try:
        asyncio.run(runner(settings))
    except KeyboardInterrupt:
        LOGGER.warning("Shutting down due to KeyboardInterrupt...")


if __name__ == "__main__":
    main()
