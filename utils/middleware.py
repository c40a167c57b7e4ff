"""
Custom middleware for API request logging.
"""
import logging
import time

from utils.mongo import log_api_request

logger = logging.getLogger(__name__)


class APILoggingMiddleware:
    """
    Log service occupancy and fare-quote requests to MongoDB.
    The quote log feeds the quote-demand analytics.
    """

    LOGGED_PREFIXES = ['/api/services/']

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        should_log = any(request.path.startswith(prefix) for prefix in self.LOGGED_PREFIXES)
        if not should_log:
            return self.get_response(request)

        start_time = time.monotonic()
        response = self.get_response(request)
        execution_time_ms = (time.monotonic() - start_time) * 1000

        user_id = None
        if hasattr(request, 'user') and request.user.is_authenticated:
            user_id = request.user.id

        # Flatten single-value lists
        request_params = {
            k: v[0] if isinstance(v, list) and len(v) == 1 else v
            for k, v in dict(request.GET).items()
        }
        match = getattr(request, 'resolver_match', None)
        if match is not None:
            request_params.update({k: v for k, v in match.kwargs.items()})

        log_api_request(
            endpoint=request.path,
            method=request.method,
            user_id=user_id,
            request_params=request_params,
            response_status=response.status_code,
            execution_time_ms=round(execution_time_ms, 2),
        )
        logger.debug("%s %s -> %s in %.1fms", request.method, request.path,
                     response.status_code, execution_time_ms)
        return response
