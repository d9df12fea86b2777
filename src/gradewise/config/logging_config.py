import logging

from gradewise.config.settings import settings


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "") -> None:
    logging.basicConfig(level=level or settings.log_level, format=LOG_FORMAT)

    # Client libraries are chatty at INFO.
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
