import logging


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging for the guard agent.
    """

    # Convert "INFO" -> logging.INFO etc.
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger.
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # httpx logs every request at INFO; the poller would flood the log.
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))
