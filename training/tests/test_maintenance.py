# training/tests/test_maintenance.py

from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from knowledge.models import KnowledgeEntry
from training.maintenance import STALE_TASK_ERROR, prune_finished_tasks, sweep_stale_tasks
from training.models import TrainingTask

Status = TrainingTask.Status


class SweepStaleTasksTests(TestCase):
    def setUp(self):
        self.now = timezone.now()
        KnowledgeEntry.objects.bulk_create([KnowledgeEntry(name="Blast")])
        self.entry = KnowledgeEntry.objects.get()

    def _processing(self, started_ago, **kwargs):
        return TrainingTask.objects.create(
            status=Status.PROCESSING,
            started_at=self.now - started_ago,
            **kwargs,
        )

    def test_old_processing_tasks_are_failed(self):
        stale = self._processing(timedelta(hours=2))
        fresh = self._processing(timedelta(minutes=5))
        pending = TrainingTask.objects.create(enqueued_at=self.now - timedelta(days=1))

        report = sweep_stale_tasks(3600, now=self.now)

        stale.refresh_from_db()
        fresh.refresh_from_db()
        pending.refresh_from_db()
        self.assertEqual(report.failed, [str(stale.pk)])
        self.assertEqual(stale.status, Status.FAILED)
        self.assertEqual(stale.error, STALE_TASK_ERROR)
        self.assertEqual(stale.failed_at, self.now)
        self.assertEqual(fresh.status, Status.PROCESSING)
        self.assertEqual(pending.status, Status.PENDING)

    def test_requeue_enqueues_same_subject(self):
        stale = self._processing(timedelta(hours=2), subject=self.entry, manual=True)

        report = sweep_stale_tasks(3600, requeue=True, now=self.now)

        self.assertEqual(len(report.requeued), 1)
        new_task = TrainingTask.objects.get(pk=report.requeued[0])
        self.assertNotEqual(new_task.pk, stale.pk)
        self.assertEqual(new_task.status, Status.PENDING)
        self.assertEqual(new_task.subject_id, self.entry.pk)
        self.assertTrue(new_task.manual)

    def test_uses_configured_age(self):
        stale = self._processing(timedelta(minutes=20))

        with self.settings(TRAINING_STALE_AFTER_SECONDS=600):
            report = sweep_stale_tasks(now=self.now)

        self.assertEqual(report.failed, [str(stale.pk)])

    def test_nothing_to_sweep(self):
        report = sweep_stale_tasks(3600, now=self.now)

        self.assertEqual(report.failed, [])
        self.assertEqual(report.requeued, [])


class PruneFinishedTasksTests(TestCase):
    def test_only_old_terminal_tasks_are_deleted(self):
        now = timezone.now()
        old = now - timedelta(days=40)
        old_completed = TrainingTask.objects.create(status=Status.COMPLETED, enqueued_at=old)
        old_failed = TrainingTask.objects.create(status=Status.FAILED, enqueued_at=old)
        old_pending = TrainingTask.objects.create(status=Status.PENDING, enqueued_at=old)
        old_processing = TrainingTask.objects.create(status=Status.PROCESSING, enqueued_at=old)
        recent_completed = TrainingTask.objects.create(status=Status.COMPLETED, enqueued_at=now)

        deleted = prune_finished_tasks(30, now=now)

        self.assertEqual(deleted, 2)
        remaining = set(TrainingTask.objects.values_list("pk", flat=True))
        self.assertEqual(remaining, {old_pending.pk, old_processing.pk, recent_completed.pk})
        self.assertNotIn(old_completed.pk, remaining)
        self.assertNotIn(old_failed.pk, remaining)

    def test_negative_days_rejected(self):
        with self.assertRaises(ValueError):
            prune_finished_tasks(-1)
