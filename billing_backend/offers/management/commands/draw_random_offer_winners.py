# offers/management/commands/draw_random_offer_winners.py

from __future__ import annotations

from django.core.management.base import BaseCommand

from offers.services.random_assignment import draw_random_offer_winners


class Command(BaseCommand):
    help = "Run a fresh random customer offer draw for the active campaign code."

    def handle(self, *args, **options):
        result = draw_random_offer_winners()

        self.stdout.write(
            f"Campaign {result.campaign_code}: cleared {result.cleared_count}, "
            f"assigned {result.assigned_count}"
        )
        for rule_id, customer_ids in result.winners_by_rule.items():
            self.stdout.write(f"  {rule_id}: {len(customer_ids)} winner(s)")

        self.stdout.write(self.style.SUCCESS("Done."))
