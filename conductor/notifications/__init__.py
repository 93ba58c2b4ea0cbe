"""Pipeline notifications."""

from .channels import NotificationChannel, WebhookChannel, channels_from_config
from .models import (
    STATUS_EMOJI,
    Notification,
    NotificationError,
    NotificationType,
    build_completion_notification,
    build_failure_notification,
    build_start_notification,
    build_test_notification,
    format_duration,
)
from .service import NotificationService

__all__ = [
    "Notification",
    "NotificationType",
    "NotificationError",
    "NotificationChannel",
    "NotificationService",
    "WebhookChannel",
    "channels_from_config",
    "STATUS_EMOJI",
    "format_duration",
    "build_start_notification",
    "build_completion_notification",
    "build_failure_notification",
    "build_test_notification",
]
