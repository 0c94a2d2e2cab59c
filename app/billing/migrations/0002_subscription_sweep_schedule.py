"""
Add celery-beat schedules for the subscription sweeps.

- Expiry check every SUBSCRIPTION_EXPIRY_CHECK_INTERVAL_MINUTES (default 720)
- Grace period expiry and expiry notifications once a day
"""

from django.conf import settings
from django.db import migrations

PERIODIC_TASKS = [
    (
        "Process Expired Subscriptions",
        "billing.tasks.process_expired_subscriptions",
        "expiry",
        "Moves ACTIVE subscriptions past their end date into the grace period.",
    ),
    (
        "Process Grace Period Expiry",
        "billing.tasks.process_grace_period_expiry",
        "daily",
        "Expires subscriptions whose grace period has ended and resets premium flags.",
    ),
    (
        "Send Subscription Expiry Notifications",
        "billing.tasks.send_expiry_notifications",
        "daily",
        "Emails 3-day and 1-day expiry warnings and the expired notice.",
    ),
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedules = {
        "expiry": IntervalSchedule.objects.get_or_create(
            every=getattr(settings, "SUBSCRIPTION_EXPIRY_CHECK_INTERVAL_MINUTES", 720),
            period="minutes",
        )[0],
        "daily": IntervalSchedule.objects.get_or_create(every=24, period="hours")[0],
    }

    for name, task, schedule, description in PERIODIC_TASKS:
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedules[schedule],
                "enabled": True,
                "description": description,
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=[name for name, *_ in PERIODIC_TASKS]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
