"""API URL configuration."""
from __future__ import annotations

from django.urls import path

from backend.api.views import ObservationsView

urlpatterns = [
    path("observations", ObservationsView.as_view(), name="observations"),
]
