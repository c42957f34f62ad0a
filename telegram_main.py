import logging

from config import ConfigurationError, configure_logging, load_settings
from infrastructure.factory import build_backends, build_orchestrator
from interfaces.telegram.handlers import create_telegram_bot

logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    if not settings.telegram_token:
        raise ConfigurationError("TELEGRAM_TOKEN environment variable is not set.")

    backends = build_backends(settings)
    bot = create_telegram_bot(
        settings.telegram_token,
        build_orchestrator(settings, backends),
        backends.ledger,
        backends.rate_source,
        backends.identity_repo,
        require_positive_rate=settings.require_positive_rate,
    )
    logger.info("Telegram bot polling")
    bot.infinity_polling()


if __name__ == "__main__":
    main()
