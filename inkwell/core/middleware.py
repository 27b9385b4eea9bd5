import logging
import time

logger = logging.getLogger("inkwell.requests")


class RequestLoggingMiddleware:
    """Log method, path, status and duration of every HTTP request."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        start = time.time()
        response = self.get_response(request)
        duration_ms = round((time.time() - start) * 1000, 1)
        logger.info(f"{request.method} {request.path} {response.status_code} {duration_ms}ms")
        return response
