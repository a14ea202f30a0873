from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView


def healthcheck(_request):
    """Simple readiness/liveness probe used by deployment."""
    return JsonResponse({"status": "ok"})


urlpatterns = [
    path("admin/", admin.site.urls),
    # Training queue / model registry endpoints
    path("api/training/", include("training.urls")),
    # OpenAPI schema for the operator API
    path("api/schema/", SpectacularAPIView.as_view(), name="api-schema"),
    # Healthcheck
    path("health/", healthcheck, name="healthcheck"),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
