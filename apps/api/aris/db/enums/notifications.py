"""Notification-related enums."""

from enum import Enum


class NotificationType(str, Enum):
    """Types of in-app notifications."""

    # Subscription notifications
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_PAYMENT_FAILED = "subscription_payment_failed"
    SUBSCRIPTION_PAYMENT_SUCCEEDED = "subscription_payment_succeeded"
    SUBSCRIPTION_TRIAL_ENDING = "subscription_trial_ending"

    # Metakocka integration
    METAKOCKA_CONNECTED = "metakocka_connected"
    METAKOCKA_SYNC_COMPLETED = "metakocka_sync_completed"
    METAKOCKA_SYNC_FAILED = "metakocka_sync_failed"
    METAKOCKA_ERROR_RESOLVED = "metakocka_error_resolved"
    METAKOCKA_CREDENTIALS_EXPIRED = "metakocka_credentials_expired"

    # Email
    EMAIL_REVIEW_REQUIRED = "email_review_required"
    EMAIL_SYNC_FAILED = "email_sync_failed"

    # System / users
    SYSTEM_MAINTENANCE = "system_maintenance"
    SYSTEM_UPDATE = "system_update"
    USER_JOINED = "user_joined"
    USER_ROLE_CHANGED = "user_role_changed"
