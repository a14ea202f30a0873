# knowledge/tests/test_models.py

from django.test import TestCase

from knowledge.models import KnowledgeEntry


class KnowledgeEntryTests(TestCase):
    def test_label_falls_back_to_id(self):
        KnowledgeEntry.objects.bulk_create(
            [KnowledgeEntry(name="Bacterial leaf blight"), KnowledgeEntry(name="")]
        )
        named = KnowledgeEntry.objects.get(name="Bacterial leaf blight")
        unnamed = KnowledgeEntry.objects.get(name="")

        self.assertEqual(named.label, "Bacterial leaf blight")
        self.assertEqual(unnamed.label, f"Entry_{unnamed.pk}")

    def test_images_default_to_empty_list(self):
        KnowledgeEntry.objects.bulk_create([KnowledgeEntry(name="Tungro")])

        self.assertEqual(KnowledgeEntry.objects.get().images, [])
