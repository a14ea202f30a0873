from django.urls import path

from . import views

urlpatterns = [
    # Run the queue processor once, synchronously.
    path("trigger/", views.training_trigger, name="training-trigger"),

    # Task listing (GET, filterable) and manual enqueue (POST).
    path("tasks/", views.training_tasks, name="training-tasks"),
    path("tasks/<uuid:task_id>/", views.training_task_detail, name="training-task-detail"),

    # Latest trained model and a corpus/queue overview for operators.
    path("model/", views.latest_model, name="training-latest-model"),
    path("overview/", views.training_overview, name="training-overview"),
]
