"""
hireledger/urls.py

Root URL configuration.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    # ── Admin ──────────────────────────────────────────────────────────────────
    path("admin/", admin.site.urls),

    # ── Recruiter interaction ledger ───────────────────────────────────────────
    path("interactions/", include("interactions.urls", namespace="interactions")),

    # ── AI pre-screening ───────────────────────────────────────────────────────
    path("prescreening/", include("prescreening.urls", namespace="prescreening")),

    # ── Workflow automation (CSRF-exempt, CORS-enabled) ────────────────────────
    path("workflows/", include("workflows.urls", namespace="workflows")),
]
