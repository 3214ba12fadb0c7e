"""Root URL configuration: the JSON API plus static assets."""
from __future__ import annotations

from django.conf import settings
from django.urls import include, path, re_path
from django.views.generic import RedirectView
from django.views.static import serve

urlpatterns = [
    path("api/", include("backend.api.urls")),
    re_path(r"^static/(?P<path>.*)$", serve, {"document_root": settings.BASE_DIR / "static"}),
    path("", RedirectView.as_view(url="/static/index.html", permanent=False)),
]
