from config import ConfigurationError, configure_logging, load_settings
from infrastructure.factory import build_backends, build_orchestrator
from interfaces.discord.handlers import create_discord_bot


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    if not settings.discord_token:
        raise ConfigurationError("DISCORD_TOKEN environment variable is not set.")

    backends = build_backends(settings)
    bot = create_discord_bot(
        build_orchestrator(settings, backends),
        backends.ledger,
        backends.rate_source,
        backends.identity_repo,
        require_positive_rate=settings.require_positive_rate,
    )
    bot.run(settings.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
