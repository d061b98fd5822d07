"""
Add celery-beat schedule for sending due payouts.

This migration creates the periodic task schedule for the
process_scheduled_payouts task, which runs every 15 minutes to queue
scheduled payouts whose delay has passed and requeue payouts stuck in
processing.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for scheduled payouts."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Every 15 minutes
    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Process Scheduled Seller Payouts",
        defaults={
            "task": "settlement.tasks.process_scheduled_payouts",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Queues scheduled payouts whose scheduled time has passed and "
                "requeues payouts left in processing by a failed attempt."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name="Process Scheduled Seller Payouts",
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
