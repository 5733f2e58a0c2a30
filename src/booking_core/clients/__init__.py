"""HTTP clients for collaborating services."""

from booking_core.clients.notification_client import NotificationClient

__all__ = ["NotificationClient"]
