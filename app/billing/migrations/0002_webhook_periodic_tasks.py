"""
Add celery-beat schedules for webhook maintenance.

Creates periodic tasks for:
- retry_failed_webhooks: every 5 minutes
- cleanup_stuck_webhooks: every 10 minutes
- cleanup_old_webhooks: daily at 03:30
"""

from django.db import migrations

RETRY_TASK_NAME = "Retry Failed Stripe Webhooks"
STUCK_TASK_NAME = "Reset Stuck Stripe Webhooks"
CLEANUP_TASK_NAME = "Clean Up Old Stripe Webhooks"


def create_periodic_tasks(apps, schema_editor):
    """Create the webhook maintenance schedules."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    every_5_minutes, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )
    every_10_minutes, _ = IntervalSchedule.objects.get_or_create(
        every=10,
        period="minutes",
    )
    nightly, _ = CrontabSchedule.objects.get_or_create(
        minute="30",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    PeriodicTask.objects.get_or_create(
        name=RETRY_TASK_NAME,
        defaults={
            "task": "billing.tasks.retry_failed_webhooks",
            "interval": every_5_minutes,
            "enabled": True,
            "description": "Re-queues failed webhook events under the retry limit.",
        },
    )
    PeriodicTask.objects.get_or_create(
        name=STUCK_TASK_NAME,
        defaults={
            "task": "billing.tasks.cleanup_stuck_webhooks",
            "interval": every_10_minutes,
            "enabled": True,
            "description": "Marks events stuck in processing as failed.",
        },
    )
    PeriodicTask.objects.get_or_create(
        name=CLEANUP_TASK_NAME,
        defaults={
            "task": "billing.tasks.cleanup_old_webhooks",
            "crontab": nightly,
            "enabled": True,
            "description": "Deletes processed webhook events older than 90 days.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the schedules on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[RETRY_TASK_NAME, STUCK_TASK_NAME, CLEANUP_TASK_NAME],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
