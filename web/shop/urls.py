from django.urls import include, path

urlpatterns = [
    path("api/", include("apps.monitoring.urls")),
    path("api/", include("apps.checkout.urls")),
]
