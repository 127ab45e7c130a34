"""
Add celery-beat schedules for the escrow background sweeps.

Creates four periodic tasks:
- Process Scheduled Payouts: hourly, pays holds whose payout time has passed
- Process Auto Releases: every 15 minutes, releases holds whose seller
  release request went unanswered
- Recover Stuck Payouts: every 15 minutes, resolves claims interrupted mid-call
- Retry Failed Webhooks: every 5 minutes, re-queues failed capture events
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Process Scheduled Escrow Payouts",
        "task": "escrow.workers.payout_sweep.process_scheduled_payouts",
        "every": 1,
        "period": "hours",
        "description": (
            "Claims released holds whose payout_scheduled_at has passed and "
            "pays the seller over Stripe or PayPal."
        ),
    },
    {
        "name": "Process Escrow Auto Releases",
        "task": "escrow.workers.release_sweep.process_auto_releases",
        "every": 15,
        "period": "minutes",
        "description": (
            "Releases funds for release-requested transactions once the buyer "
            "response window has closed."
        ),
    },
    {
        "name": "Recover Stuck Escrow Payouts",
        "task": "escrow.workers.payout_sweep.recover_stuck_payouts",
        "every": 15,
        "period": "minutes",
        "description": (
            "Finalizes or resets payout claims left in processing by an "
            "interrupted worker."
        ),
    },
    {
        "name": "Retry Failed Escrow Webhooks",
        "task": "escrow.tasks.retry_failed_webhooks",
        "every": 5,
        "period": "minutes",
        "description": "Re-queues failed webhook events that have retries left.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the escrow sweeps."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period=entry["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("escrow", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
