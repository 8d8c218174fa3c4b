"""Command-line entry point."""
import sys
import logging
import uvicorn

from conversationbot.config import settings, ConfigurationError

logger = logging.getLogger(__name__)


def main():
    """Validate configuration and serve the application."""
    try:
        settings.validate_bootstrap()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical(f"Refusing to start: {e}")
        sys.exit(1)

    uvicorn.run(
        "conversationbot.app:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
