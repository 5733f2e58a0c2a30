"""Celery application for the periodic booking sweeps."""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from booking_core.config import get_settings
from booking_core.utils.logging import setup_logging

settings = get_settings()

app = Celery(
    "booking_core",
    broker=settings.redis.url,
    backend=settings.redis.url,
    include=[
        "booking_core.tasks.appointments",
        "booking_core.tasks.maintenance",
    ],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,  # 4 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,  # 1 hour
)

app.conf.beat_schedule = {
    # 24h / 1h reminders; windows are wider than the interval so nothing is skipped
    "send-appointment-reminders": {
        "task": "booking_core.tasks.appointments.send_reminders",
        "schedule": crontab(minute="*/5"),
    },
    # Runs often, but the sweep itself is throttled by a Redis marker
    "auto-complete-appointments": {
        "task": "booking_core.tasks.appointments.auto_complete_appointments",
        "schedule": crontab(minute="*/5"),
    },
    "purge-expired-slot-locks": {
        "task": "booking_core.tasks.maintenance.purge_expired_slot_locks",
        "schedule": crontab(minute="*/5"),
    },
    "expire-waitlist-entries": {
        "task": "booking_core.tasks.maintenance.expire_waitlist_entries",
        "schedule": crontab(minute=0),
    },
}


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Workers log through the same `booking_core` handlers as the API."""
    setup_logging()


if __name__ == "__main__":
    app.start()
