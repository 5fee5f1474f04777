# billing/management/commands/backfill_bill_post_processing.py

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Q

from billing.models import Bill
from billing.services.post_completion import has_offer_counter_activity, process_completed_bill

BATCH_SIZE = 100


class Command(BaseCommand):
    help = (
        "Re-run post-completion processing for completed bills whose reward or "
        "offer counter flags are still False."
    )

    def add_arguments(self, parser):
        parser.add_argument("bill_id", nargs="?", help="Process only this bill.")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report what would be processed without changing anything.",
        )
        parser.add_argument(
            "--force-counter-reprocess",
            action="store_true",
            help="Merge offer counters even for bills that show counter activity.",
        )

    def handle(self, *args, **options):
        dry_run = bool(options.get("dry_run"))
        force = bool(options.get("force_counter_reprocess"))
        bill_id = options.get("bill_id")

        self.summary = {"scanned": 0, "fixed": 0, "skipped": 0, "failed": 0}

        if dry_run:
            self.stdout.write("DRY RUN: no database changes will be saved.\n")

        if bill_id:
            bill = Bill.objects.filter(pk=bill_id).first()
            if bill is None:
                raise CommandError(f"Bill {bill_id} not found")
            self._process(bill, dry_run=dry_run, force=force)
        else:
            pending = (
                Bill.objects.filter(status=Bill.STATUS_COMPLETED)
                .filter(Q(customer_reward_processed=False) | Q(offer_counters_processed=False))
                .order_by("created_at", "id")
            )
            for bill in pending.iterator(chunk_size=BATCH_SIZE):
                self._process(bill, dry_run=dry_run, force=force)

        s = self.summary
        self.stdout.write(
            self.style.SUCCESS(
                f"Done. scanned={s['scanned']} fixed={s['fixed']} "
                f"skipped={s['skipped']} failed={s['failed']}"
            )
        )

    def _process(self, bill: Bill, *, dry_run: bool, force: bool):
        self.summary["scanned"] += 1

        if bill.status != Bill.STATUS_COMPLETED:
            self.summary["skipped"] += 1
            self.stdout.write(f"[SKIP] {bill.pk} is not completed (status={bill.status})")
            return

        needs_reward = not bill.customer_reward_processed
        needs_counters = not bill.offer_counters_processed
        if not needs_reward and not needs_counters:
            self.summary["skipped"] += 1
            self.stdout.write(f"[SKIP] {bill.pk} already processed.")
            return

        activity = has_offer_counter_activity(bill)

        if dry_run:
            self.summary["skipped"] += 1
            self.stdout.write(
                f"[DRY-RUN] {bill.pk} reward={needs_reward} "
                f"offerCounters={needs_counters} counterActivity={activity}"
            )
            return

        report = process_completed_bill(
            bill.pk,
            run_counters=needs_counters,
            merge_counters=force,
            run_rewards=needs_reward,
        )

        bill.refresh_from_db(fields=["customer_reward_processed", "offer_counters_processed"])

        if report.errors:
            self.summary["failed"] += 1
            self.stderr.write(f"[FAIL] {bill.pk} {', '.join(report.errors)}")
            return

        if bill.customer_reward_processed and bill.offer_counters_processed:
            self.summary["fixed"] += 1
            self.stdout.write(f"[OK] {bill.pk} reward=true offerCounters=true")
            return

        self.summary["skipped"] += 1
        if activity and not bill.offer_counters_processed and not force:
            self.stdout.write(
                f"[SKIP] {bill.pk} has offer counter activity. "
                "Re-run with --force-counter-reprocess if required."
            )
        else:
            self.stdout.write(
                f"[PENDING] {bill.pk} reward={bill.customer_reward_processed} "
                f"offerCounters={bill.offer_counters_processed}"
            )
