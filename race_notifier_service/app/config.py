# race_notifier_service/app/config.py
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    GCP_PROJECT_ID: str | None = os.getenv("GCP_PROJECT_ID")

    # Firestore
    FIRESTORE_DATABASE_NAME: str | None = os.getenv("FIRESTORE_DATABASE_NAME")
    USER_PREFERENCES_COLLECTION: str = "user_preferences"
    SENT_NOTIFICATIONS_COLLECTION: str = "sent_notifications"
    PREVIOUS_STANDINGS_COLLECTION: str = "previous_standings"
    # Per-category collections, e.g. "f1_schedule", "motogp_standings"
    SCHEDULE_COLLECTION_TEMPLATE: str = "{category}_schedule"
    STANDINGS_COLLECTION_TEMPLATE: str = "{category}_standings"
    FIRESTORE_MAX_BATCH_OPERATIONS: int = 500

    CATEGORIES: tuple[str, ...] = ("f1", "motogp", "indycar")

    # Session watcher
    SESSION_WINDOW_MIN_MINUTES: int = int(os.getenv("SESSION_WINDOW_MIN_MINUTES", "1"))
    SESSION_WINDOW_MAX_MINUTES: int = int(os.getenv("SESSION_WINDOW_MAX_MINUTES", "15"))
    MAX_CANDIDATE_EVENTS: int = 3
    SENT_LEDGER_LOOKBACK_HOURS: int = 2
    SENT_LEDGER_RETENTION_DAYS: int = int(os.getenv("SENT_LEDGER_RETENTION_DAYS", "7"))

    # FCM / Android delivery hints
    SESSION_CHANNEL_ID: str = "session_channel"
    STANDINGS_CHANNEL_ID: str = "standings_channel"

    # Cloud Scheduler cadence; each job is bounded by its timeout
    SCHEDULER_REGION: str = os.getenv("SCHEDULER_REGION", "europe-west1")
    SCHEDULER_JOBS: dict[str, dict] = {
        "check-upcoming-sessions": {"schedule": "*/5 * * * *", "timeout_seconds": 180},
        "check-standings-changes": {"schedule": "0 */2 * * *", "timeout_seconds": 300},
        "clean-invalid-tokens": {"schedule": "0 2 * * 0", "timeout_seconds": 300},
    }

    def schedule_collection(self, category: str) -> str:
        return self.SCHEDULE_COLLECTION_TEMPLATE.format(category=category)

    def standings_collection(self, category: str) -> str:
        return self.STANDINGS_COLLECTION_TEMPLATE.format(category=category)


settings = Settings()
