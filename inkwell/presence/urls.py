from django.urls import include, path
from rest_framework.routers import SimpleRouter

from . import views

router = SimpleRouter()
router.register(r'users', views.UserStatusViewSet, basename='user')

urlpatterns = [
    path('', include(router.urls)),
]
