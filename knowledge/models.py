import uuid

from django.db import models


class KnowledgeEntry(models.Model):
    """A catalogued rice disease / pest / variety record.

    Entries are owned by the CRUD layer of the admin console. The training
    pipeline only reads them: ``images`` is the ordered list of storage
    paths that make up this entry's share of the training corpus.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    images = models.JSONField(blank=True, default=list)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name_plural = "knowledge entries"
        indexes = [
            models.Index(fields=["name"], name="knowledge_entry_name_idx"),
            models.Index(fields=["created_at"], name="knowledge_entry_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"

    @property
    def label(self) -> str:
        """Class label used when this entry's images are trained on."""
        return self.name or f"Entry_{self.id}"
