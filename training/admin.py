from django.contrib import admin

from .models import ModelRegistryRecord, TrainingTask


@admin.register(TrainingTask)
class TrainingTaskAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "status",
        "subject",
        "manual",
        "enqueued_at",
        "started_at",
        "completed_at",
        "failed_at",
    )
    list_filter = ("status", "manual", "enqueued_at")
    search_fields = ("id", "subject__name", "error")
    # Status changes belong to the queue processor.
    readonly_fields = (
        "status",
        "enqueued_at",
        "started_at",
        "completed_at",
        "failed_at",
        "error",
        "result",
    )


@admin.register(ModelRegistryRecord)
class ModelRegistryRecordAdmin(admin.ModelAdmin):
    list_display = ("key", "version", "updated_at")
    readonly_fields = ("key", "version", "metadata", "updated_at")
