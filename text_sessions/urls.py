# text_sessions/urls.py
from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import TextSessionViewSet

router = SimpleRouter()
router.register(r'', TextSessionViewSet, basename='text-session')

urlpatterns = [
    path('', include(router.urls)),
]
