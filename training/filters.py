import django_filters

from .models import TrainingTask


class TrainingTaskFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=TrainingTask.Status.choices)
    manual = django_filters.BooleanFilter()
    subject = django_filters.UUIDFilter(field_name="subject_id")
    enqueued_after = django_filters.IsoDateTimeFilter(
        field_name="enqueued_at", lookup_expr="gte"
    )
    enqueued_before = django_filters.IsoDateTimeFilter(
        field_name="enqueued_at", lookup_expr="lt"
    )

    class Meta:
        model = TrainingTask
        fields = ["status", "manual", "subject", "enqueued_after", "enqueued_before"]
