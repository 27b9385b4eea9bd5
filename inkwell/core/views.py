from django.conf import settings
from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from .health import HealthChecker


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def health_check(request):
    """API liveness plus cache and channel layer checks."""
    report = HealthChecker.check_all()
    return Response(
        {
            'success': report['healthy'],
            'message': 'Blog Management API is running!',
            'timestamp': report['timestamp'],
            'debug': settings.DEBUG,
            'checks': report['checks'],
            'errors': report['errors'],
        },
        status=status.HTTP_200_OK if report['healthy'] else status.HTTP_503_SERVICE_UNAVAILABLE
    )
