# race_notifier_service/app/models.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, List, Literal
import datetime


class FirestoreDoc(BaseModel):
    """Base for documents shared with the mobile app, which stores camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# --- Schedules ---
class SessionSlot(FirestoreDoc):
    iso_date_time: Optional[datetime.datetime] = Field(default=None, alias="isoDateTime")

    @field_validator("iso_date_time", mode="before")
    @classmethod
    def _blank_is_tbd(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("iso_date_time")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime.datetime]):
        # Schedules without an offset are published in UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value


class UpcomingSession(BaseModel):
    session_type: str
    starts_at: datetime.datetime


class ScheduleEvent(BaseModel):
    event_id: str
    gp: Optional[str] = None
    sessions: Dict[str, SessionSlot] = Field(default_factory=dict)

    def future_sessions(self, now: datetime.datetime) -> List[UpcomingSession]:
        """Sessions with a known start strictly after `now`, earliest first."""
        upcoming = [
            UpcomingSession(session_type=session_type, starts_at=slot.iso_date_time)
            for session_type, slot in self.sessions.items()
            if slot.iso_date_time is not None and slot.iso_date_time > now
        ]
        upcoming.sort(key=lambda s: s.starts_at)
        return upcoming

    def next_session_time(self, now: datetime.datetime) -> Optional[datetime.datetime]:
        upcoming = self.future_sessions(now)
        return upcoming[0].starts_at if upcoming else None


# --- Users ---
class DeviceTokenDoc(FirestoreDoc):
    """Only the token of a user preference document; preferences are not decoded."""

    user_id: str
    fcm_token: str = Field(alias="fcmToken", min_length=1)


class CategoryPreference(FirestoreDoc):
    category: str
    notifications_enabled: bool = Field(default=False, alias="notificationsEnabled")
    favorite_driver: Optional[str] = Field(default=None, alias="favoriteDriver")


class UserPreferenceDoc(FirestoreDoc):
    user_id: str
    fcm_token: Optional[str] = Field(default=None, alias="fcmToken")
    preferences: List[CategoryPreference] = Field(default_factory=list)

    def enabled_preference_for(self, category: str) -> Optional[CategoryPreference]:
        """First preference for `category` (case-insensitive) with notifications on."""
        for pref in self.preferences:
            if pref.category.lower() == category.lower() and pref.notifications_enabled:
                return pref
        return None

    def favorite_driver_for(self, category: str) -> Optional[str]:
        for pref in self.preferences:
            if (
                pref.category.lower() == category.lower()
                and pref.notifications_enabled
                and pref.favorite_driver
            ):
                return pref.favorite_driver
        return None


# --- Standings ---
class StandingEntry(FirestoreDoc):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    points: float = 0
    position: int = 999

    @field_validator("points", mode="before")
    @classmethod
    def _missing_points_is_zero(cls, value):
        return 0 if value in (None, "") else value

    @field_validator("position", mode="before")
    @classmethod
    def _missing_position_sorts_last(cls, value):
        return 999 if value in (None, "") else value


class PreviousStandingsDoc(FirestoreDoc):
    drivers: List[StandingEntry] = Field(default_factory=list)
    last_update: datetime.datetime = Field(alias="lastUpdate")


# --- Sent notification ledger ---
class SentNotificationDoc(FirestoreDoc):
    category: str
    event_id: str = Field(alias="eventId")
    session_type: str = Field(alias="sessionType")
    gp_name: str = Field(alias="gpName")
    minutes_before_start: int = Field(alias="minutesBeforeStart")
    recipient_count: int = Field(alias="recipientCount")
    success_count: int = Field(alias="successCount")
    failure_count: int = Field(alias="failureCount")
    timestamp: datetime.datetime


# --- Push delivery ---
class PushMessage(BaseModel):
    token: str
    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)
    android_priority: Literal["high", "normal"] = "high"
    channel_id: str


class BatchSendResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
