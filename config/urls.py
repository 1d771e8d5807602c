"""
URL configuration for AAPRP project.
"""
from django.contrib import admin
from django.urls import path
from django.conf import settings
from django.conf.urls.static import static
from ninja import NinjaAPI

api = NinjaAPI(
    title="AAPRP API",
    version="1.0.0",
    description="African ANSP Peer Review Programme API",
    docs_url="/docs",
)

from apps.identity.api import router as identity_router
from apps.organizations.api import router as organizations_router
from apps.governance.api import router as governance_router
from apps.assessments.api import router as assessments_router
from apps.reviews.api import router as reviews_router
from apps.reviewers.api import router as reviewers_router
from apps.findings.api import router as findings_router
from apps.notifications.api import router as notifications_router
from apps.reports.api import router as reports_router
from apps.fieldwork.api import router as fieldwork_router
from apps.analytics.api import router as analytics_router

api.add_router("/identity/", identity_router)
api.add_router("/organizations/", organizations_router)
api.add_router("/governance/", governance_router)
api.add_router("/assessments/", assessments_router)
api.add_router("/reviews/", reviews_router)
api.add_router("/reviewers/", reviewers_router)
api.add_router("/findings/", findings_router)
api.add_router("/notifications/", notifications_router)
api.add_router("/reports/", reports_router)
api.add_router("/fieldwork/", fieldwork_router)
api.add_router("/analytics/", analytics_router)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', api.urls),
]

# Serve media files in development
if settings.DEBUG:
    urlpatterns += static(
        getattr(settings, 'MEDIA_URL', '/media/'),
        document_root=getattr(settings, 'MEDIA_ROOT', settings.BASE_DIR / 'media')
    )
