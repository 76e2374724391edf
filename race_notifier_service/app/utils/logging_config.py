# race_notifier_service/app/utils/logging_config.py
import logging
import sys

from ..config import settings

# Client libraries that log every RPC and token refresh at INFO
NOISY_LOGGERS = ("google.api_core", "google.auth", "urllib3", "firebase_admin")


def setup_logging(level_name: str | None = None) -> int:
    """
    Sends the notifier's logs to stdout for Cloud Run / Cloud Logging.
    Returns the numeric level that was applied.
    """
    level_name = (level_name or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - race-notifier - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(max(log_level, logging.WARNING))

    logging.getLogger(__name__).info(
        f"Logging configured at {logging.getLevelName(log_level)} for jobs: "
        f"{', '.join(settings.SCHEDULER_JOBS)}"
    )
    return log_level
