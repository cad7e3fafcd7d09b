"""
Add celery-beat schedules for the payment reconciliation jobs.

This migration creates the periodic tasks for:
- replay_failed_webhooks, every 5 minutes
- reconcile_succeeded_payments, every 10 minutes
- cleanup_expired_intents, every 30 minutes
"""

from django.db import migrations

SCHEDULES = [
    (
        "Replay Failed Payment Webhooks",
        "payments.tasks.replay_failed_webhooks",
        5,
        "Re-runs failed webhook events that are below the retry ceiling.",
    ),
    (
        "Reconcile Succeeded Payments",
        "payments.tasks.reconcile_succeeded_payments",
        10,
        "Marks orders paid when a succeeded payment exists but the order drifted.",
    ),
    (
        "Cleanup Expired Payment Intents",
        "payments.tasks.cleanup_expired_intents",
        30,
        "Fails payment intents left unconfirmed past the expiry cutoff.",
    ),
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the reconciliation jobs."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for name, task, minutes, description in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=minutes,
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedule,
                "enabled": True,
                "description": description,
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[name for name, *_ in SCHEDULES]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
