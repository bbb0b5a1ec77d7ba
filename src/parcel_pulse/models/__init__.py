from .env_cfg import EnvCfg
from .notification import Notification, NotificationSettings, PollUpdate
from .session import DetectedTrackingId, PendingImport, SessionRecord
from .tracking import RouteResult, TrackingRecord, TrackingStatus

__all__ = [
    "EnvCfg",
    "Notification",
    "NotificationSettings",
    "PollUpdate",
    "DetectedTrackingId",
    "PendingImport",
    "SessionRecord",
    "RouteResult",
    "TrackingRecord",
    "TrackingStatus",
]
