# billing/management/commands/rebuild_customer_rewards.py

from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction

from billing.services.rewards import replay_reward_history, snapshot_of, write_snapshot
from customers.models import Customer
from offers.services.settings_repository import load_reward_settings


class Command(BaseCommand):
    help = "Rebuild customer reward points / progress by replaying completed bill history."

    def add_arguments(self, parser):
        parser.add_argument(
            "--after",
            default=None,
            help="Resume after this customer id (ids are processed in ascending order).",
        )
        parser.add_argument("--batch-size", type=int, default=200)
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would change without saving.",
        )

    def handle(self, *args, **options):
        dry_run = bool(options.get("dry_run"))
        batch_size = max(1, int(options.get("batch_size") or 200))
        cursor = options.get("after")

        settings = load_reward_settings()
        scanned = 0
        changed = 0

        if dry_run:
            self.stdout.write("DRY RUN: no database changes will be saved.\n")

        while True:
            qs = Customer.objects.order_by("id")
            if cursor:
                qs = qs.filter(id__gt=cursor)
            batch = list(qs.values_list("id", flat=True)[:batch_size])
            if not batch:
                break

            for customer_id in batch:
                scanned += 1
                if self._rebuild(customer_id, settings, dry_run=dry_run):
                    changed += 1

            cursor = batch[-1]
            self.stdout.write(f"... processed up to {cursor}")

        self.stdout.write(self.style.SUCCESS(f"Done. scanned={scanned} changed={changed}"))

    def _rebuild(self, customer_id, settings, *, dry_run: bool) -> bool:
        with transaction.atomic():
            customer = Customer.objects.select_for_update().get(pk=customer_id)
            before = snapshot_of(customer)
            after = replay_reward_history(customer, settings)

            if after == before:
                return False

            self.stdout.write(
                f"{customer.phone}: points {before.points} -> {after.points}, "
                f"progress {before.progress} -> {after.progress}"
            )
            if not dry_run:
                write_snapshot(customer, after, settings)
            return True
