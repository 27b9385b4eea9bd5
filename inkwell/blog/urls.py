from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

router = DefaultRouter()
router.register(r'blogs', views.BlogViewSet, basename='blog')

urlpatterns = [
    path('', include(router.urls)),
]
