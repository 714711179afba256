# docavailable/urls.py
from django.contrib import admin
from django.urls import path, include
from rest_framework import permissions
from drf_yasg import openapi
from drf_yasg.views import get_schema_view

api_info = openapi.Info(
    title="DocAvailable API",
    default_version='v1',
    description="Text session lifecycle, billing and doctor wallet endpoints",
)

schema_view = get_schema_view(
    api_info,
    public=True,
    permission_classes=[permissions.AllowAny],
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/text-sessions/', include('text_sessions.urls')),
    path('api/billing/', include('billing.urls')),
    path('api/communication/', include('communication.urls')),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
]
