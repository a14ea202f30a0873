from django.contrib import admin

from .models import KnowledgeEntry


@admin.register(KnowledgeEntry)
class KnowledgeEntryAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "name",
        "image_count",
        "created_at",
        "updated_at",
    )
    list_filter = ("created_at",)
    search_fields = ("id", "name", "description")

    @admin.display(description="Images")
    def image_count(self, obj: KnowledgeEntry) -> int:
        return len(obj.images or [])
