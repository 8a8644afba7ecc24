from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand

from labops_core.qc.reminders import scan_qc_schedule


class Command(BaseCommand):
    help = "List QC definitions that are due, overdue, or whose last run did not pass"

    def add_arguments(self, parser):
        parser.add_argument(
            "--hours",
            type=float,
            default=None,
            help="Look-ahead window in hours (default: QC_REMINDER_HORIZON_HOURS)",
        )

    def handle(self, *args, **options):
        hours = options["hours"]
        if hours is None:
            hours = settings.QC_REMINDER_HORIZON_HOURS

        report = scan_qc_schedule(horizon=timedelta(hours=float(hours)))

        for section in ("overdue", "due", "failing"):
            rows = report[section]
            self.stdout.write(f"{section.upper()}: {len(rows)}")
            for row in rows:
                self.stdout.write(
                    f"  #{row['id']} {row['test_code']} {row['control_name']} "
                    f"(level {row['control_level']}) next due {row['next_due_at']}"
                )
