# offers/tests/test_concurrency.py

from dataclasses import replace
from unittest import mock

from django.db import OperationalError
from django.db.models import F
from django.test import SimpleTestCase, TestCase

from billing.tests.factories import save_reward_settings
from offers.models import SINGLETON_PK, CustomerRewardSettings
from offers.services.concurrency import (
    is_write_conflict,
    update_settings_document,
    update_settings_with_retry,
    with_write_conflict_retry,
)
from offers.services.exceptions import WriteConflictError
from offers.services.settings_repository import load_reward_settings


@mock.patch("offers.services.concurrency.time.sleep")
class RetryTests(SimpleTestCase):
    def test_returns_first_success(self, sleep):
        self.assertEqual(with_write_conflict_retry(lambda: 42), 42)
        sleep.assert_not_called()

    def test_linear_backoff_then_success(self, sleep):
        task = mock.Mock(side_effect=[WriteConflictError("x"), WriteConflictError("x"), "ok"])

        result = with_write_conflict_retry(task, attempts=3, initial_delay_ms=100)

        self.assertEqual(result, "ok")
        self.assertEqual(task.call_count, 3)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [0.1, 0.2])

    def test_exhaustion_reraises_last_conflict(self, sleep):
        task = mock.Mock(side_effect=WriteConflictError("still busy"))

        with self.assertRaises(WriteConflictError):
            with_write_conflict_retry(task, attempts=2, initial_delay_ms=10)
        self.assertEqual(task.call_count, 2)

    def test_other_errors_are_not_retried(self, sleep):
        task = mock.Mock(side_effect=ValueError("boom"))

        with self.assertRaises(ValueError):
            with_write_conflict_retry(task, attempts=3)
        self.assertEqual(task.call_count, 1)

    def test_database_lock_errors_count_as_conflicts(self, sleep):
        self.assertTrue(is_write_conflict(OperationalError("database is locked")))
        self.assertFalse(is_write_conflict(OperationalError("no such table: x")))

        task = mock.Mock(side_effect=OperationalError("no such table: x"))
        with self.assertRaises(OperationalError):
            with_write_conflict_retry(task, attempts=3)
        self.assertEqual(task.call_count, 1)


class CompareAndSwapTests(TestCase):
    """
    GUARANTEES:
    - a write only lands on the version it read
    - a concurrent writer forces a re-read, and both changes survive
    """

    def setUp(self):
        save_reward_settings(points_per_step=10)

    def _version(self):
        return CustomerRewardSettings.objects.get(pk=SINGLETON_PK).version

    def test_write_bumps_version(self):
        before = self._version()
        update_settings_document(lambda s: replace(s, points_per_step=20))

        self.assertEqual(self._version(), before + 1)
        self.assertEqual(load_reward_settings().points_per_step, 20)

    def test_interleaved_writer_raises_conflict(self):
        def mutator(current):
            CustomerRewardSettings.objects.filter(pk=SINGLETON_PK).update(version=F("version") + 1)
            return replace(current, points_per_step=20)

        with self.assertRaises(WriteConflictError):
            update_settings_document(mutator)

    @mock.patch("offers.services.concurrency.time.sleep")
    def test_retry_merges_on_fresh_read(self, sleep):
        calls = []

        def mutator(current):
            calls.append(current.total_percentage_offer_given_count)
            if len(calls) == 1:
                # another writer lands between our read and our write
                CustomerRewardSettings.objects.filter(pk=SINGLETON_PK).update(
                    total_percentage_offer_given_count=F("total_percentage_offer_given_count") + 1,
                    version=F("version") + 1,
                )
            return replace(current, total_percentage_offer_given_count=current.total_percentage_offer_given_count + 1)

        update_settings_with_retry(mutator)

        self.assertEqual(calls, [0, 1])
        self.assertEqual(load_reward_settings().total_percentage_offer_given_count, 2)
        sleep.assert_called_once()

    def test_missing_row_is_created(self):
        CustomerRewardSettings.objects.all().delete()

        update_settings_with_retry(lambda s: replace(s, points_needed_for_offer=70))

        self.assertEqual(load_reward_settings().points_needed_for_offer, 70)
