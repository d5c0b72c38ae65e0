"""
URL configuration for Config project.
"""
from django.conf import settings
from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView

from apps.common.health import HealthCheckView

admin.site.site_header = f"{settings.SITE_BRAND} 管理后台"
admin.site.site_title = settings.SITE_BRAND
admin.site.index_title = "管理控制台"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', HealthCheckView.as_view()),
    path('api/accounts/', include('apps.accounts.urls')),
    path('api/competitions/', include('apps.competitions.urls')),
    path('api/submissions/', include('apps.submissions.urls')),
    path('api/voting/', include('apps.voting.urls')),
    # OpenAPI 文档
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/swagger-ui/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/schema/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]
