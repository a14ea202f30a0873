# training/tests/test_views.py

from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.files.base import ContentFile
from django.core.files.storage import InMemoryStorage
from rest_framework.test import APITestCase

from knowledge.models import KnowledgeEntry
from training.blobs import StorageBlobReader
from training.errors import TaskStoreError
from training.models import TrainingTask
from training.registry import set_latest_model

Status = TrainingTask.Status


class TrainingApiTestCase(APITestCase):
    def setUp(self):
        # Throttle history lives in the default cache.
        cache.clear()
        User = get_user_model()
        self.admin = User.objects.create_user(username="admin", password="x", is_staff=True)
        self.user = User.objects.create_user(username="viewer", password="x")


class TriggerViewTests(TrainingApiTestCase):
    url = "/api/training/trigger/"

    def test_requires_authentication(self):
        response = self.client.post(self.url)
        self.assertIn(response.status_code, (401, 403))

    def test_non_admin_forbidden(self):
        self.client.force_authenticate(user=self.user)
        with mock.patch("training.views.trigger_training") as trigger:
            response = self.client.post(self.url)

        self.assertEqual(response.status_code, 403)
        trigger.assert_not_called()

    def test_admin_trigger_runs_processor(self):
        self.client.force_authenticate(user=self.admin)
        with mock.patch(
            "training.views.trigger_training",
            return_value={"success": True, "message": "Training triggered successfully: idle"},
        ):
            response = self.client.post(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["success"], True)

    def test_store_outage_is_503(self):
        self.client.force_authenticate(user=self.admin)
        with mock.patch(
            "training.views.trigger_training",
            return_value={"success": False, "error": "Task store unavailable"},
        ):
            response = self.client.post(self.url)

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "Task store unavailable")

    def test_real_trigger_on_empty_queue(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertIn("idle", response.json()["message"])


class TaskListViewTests(TrainingApiTestCase):
    url = "/api/training/tasks/"

    def setUp(self):
        super().setUp()
        TrainingTask.objects.create()
        TrainingTask.objects.create(status=Status.FAILED, error="insufficient training data")
        TrainingTask.objects.create(status=Status.COMPLETED, manual=True, result={"total_images": 12})

    def test_lists_tasks(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 3)

    def test_filters_by_status(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get(self.url, {"status": "failed"})

        tasks = response.json()["tasks"]
        self.assertEqual(len(tasks), 1)
        self.assertEqual(tasks[0]["error"], "insufficient training data")

    def test_filters_by_manual(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get(self.url, {"manual": "true"})

        tasks = response.json()["tasks"]
        self.assertEqual(len(tasks), 1)
        self.assertEqual(tasks[0]["result"], {"total_images": 12})

    def test_invalid_status_filter(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get(self.url, {"status": "exploded"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("status", response.json()["errors"])


class ManualEnqueueViewTests(TrainingApiTestCase):
    url = "/api/training/tasks/"

    def test_admin_enqueues_manual_task(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, 201)
        task = TrainingTask.objects.get(pk=response.json()["task_id"])
        self.assertTrue(task.manual)
        self.assertIsNone(task.subject_id)
        self.assertEqual(task.status, Status.PENDING)

    def test_enqueue_for_subject(self):
        KnowledgeEntry.objects.bulk_create([KnowledgeEntry(name="Blast")])
        entry = KnowledgeEntry.objects.get()
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(self.url, {"subject_id": str(entry.pk)}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["task"]["subject_id"], str(entry.pk))

    def test_invalid_subject(self):
        self.client.force_authenticate(user=self.admin)

        bad = self.client.post(self.url, {"subject_id": "nope"}, format="json")
        missing = self.client.post(
            self.url,
            {"subject_id": "00000000-0000-0000-0000-000000000000"},
            format="json",
        )

        self.assertEqual(bad.status_code, 400)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(TrainingTask.objects.count(), 0)

    def test_non_admin_forbidden(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(self.url, {}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(TrainingTask.objects.count(), 0)


class TaskDetailViewTests(TrainingApiTestCase):
    def test_detail(self):
        task = TrainingTask.objects.create()
        self.client.force_authenticate(user=self.user)

        response = self.client.get(f"/api/training/tasks/{task.pk}/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "pending")

    def test_unknown_task(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/training/tasks/00000000-0000-0000-0000-000000000000/")

        self.assertEqual(response.status_code, 404)

    def test_store_outage_is_503(self):
        self.client.force_authenticate(user=self.user)
        with mock.patch("training.views.get_task", side_effect=TaskStoreError("down")):
            response = self.client.get(
                "/api/training/tasks/00000000-0000-0000-0000-000000000000/"
            )

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"], "down")


class LatestModelViewTests(TrainingApiTestCase):
    url = "/api/training/model/"

    def test_no_model_yet(self):
        self.client.force_authenticate(user=self.user)

        self.assertEqual(self.client.get(self.url).status_code, 404)

    def test_latest_model(self):
        set_latest_model({"artifact_locator": "models/a.pkl", "final_accuracy": 0.91})
        self.client.force_authenticate(user=self.user)

        body = self.client.get(self.url).json()

        self.assertEqual(body["key"], "rice_disease_latest")
        self.assertEqual(body["version"], 1)
        self.assertEqual(body["metadata"]["final_accuracy"], 0.91)


class OverviewViewTests(TrainingApiTestCase):
    url = "/api/training/overview/"

    def test_overview(self):
        KnowledgeEntry.objects.create(name="Blast", images=["blast/1.jpg", "blast/2.jpg"])
        KnowledgeEntry.objects.create(name="Tungro", images=["tungro/1.jpg"])
        self.client.force_authenticate(user=self.admin)

        body = self.client.get(self.url).json()

        self.assertEqual(body["total_entries"], 2)
        self.assertEqual(body["total_image_references"], 3)
        self.assertCountEqual([e["name"] for e in body["entries"]], ["Blast", "Tungro"])
        # One task per created entry, from the watcher.
        self.assertEqual(body["queue"]["pending"], 2)
        self.assertIsNone(body["latest_model_version"])

    def test_non_admin_forbidden(self):
        self.client.force_authenticate(user=self.user)

        self.assertEqual(self.client.get(self.url).status_code, 403)

    def test_overview_reports_resolvable_images_and_stored_files(self):
        storage = InMemoryStorage()
        storage.save("rice_disease/blast/1.jpg", ContentFile(b"a"))
        storage.save("rice_disease/tungro/1.jpg", ContentFile(b"b"))
        storage.save("rice_disease/unused/x.jpg", ContentFile(b"c"))
        KnowledgeEntry.objects.create(name="Blast", images=["blast/1.jpg", "blast/2.jpg"])
        KnowledgeEntry.objects.create(name="Tungro", images=["rice_disease/tungro/1.jpg"])
        self.client.force_authenticate(user=self.admin)

        with mock.patch(
            "training.views.get_blob_reader",
            return_value=StorageBlobReader(storage, prefix="rice_disease/"),
        ):
            body = self.client.get(self.url).json()

        by_name = {e["name"]: e for e in body["entries"]}
        self.assertEqual(by_name["Blast"]["image_count"], 2)
        self.assertEqual(by_name["Blast"]["resolvable_images"], 1)
        self.assertEqual(by_name["Tungro"]["resolvable_images"], 1)
        self.assertEqual(body["total_resolvable_images"], 2)
        self.assertEqual(
            body["storage_files"],
            [
                "rice_disease/blast/1.jpg",
                "rice_disease/tungro/1.jpg",
                "rice_disease/unused/x.jpg",
            ],
        )
        self.assertEqual(body["total_storage_files"], 3)

    def test_storage_listing_is_capped(self):
        storage = InMemoryStorage()
        for i in range(25):
            storage.save(f"rice_disease/blast/{i:02d}.jpg", ContentFile(b"x"))
        self.client.force_authenticate(user=self.admin)

        with mock.patch(
            "training.views.get_blob_reader",
            return_value=StorageBlobReader(storage, prefix="rice_disease/"),
        ):
            body = self.client.get(self.url).json()

        self.assertEqual(len(body["storage_files"]), 20)
        self.assertEqual(body["storage_files"][0], "rice_disease/blast/00.jpg")
        self.assertEqual(body["total_storage_files"], 25)
