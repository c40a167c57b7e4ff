"""
Error kinds raised by the occupancy and fare engine.

Views turn these into JSON responses with `error_response()`; everything
else lets them propagate.
"""
import logging

from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class FareEngineError(Exception):
    """Base class for every engine failure that callers are expected to handle."""
    code = 'fare_engine_error'
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message=None, **context):
        self.message = message or self.__class__.__doc__.strip().splitlines()[0]
        self.context = context
        super().__init__(self.message)


class CapacityExceeded(FareEngineError):
    """No seat (or wheelchair space) is left on this service."""
    code = 'capacity_exceeded'
    http_status = status.HTTP_409_CONFLICT


class OutsideBookingWindow(FareEngineError):
    """The service is not open for bookings or changes at this time."""
    code = 'outside_booking_window'
    http_status = status.HTTP_409_CONFLICT


class InvalidRateConfig(FareEngineError):
    """The cost rate table or route figures are invalid."""
    code = 'invalid_rate_config'
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class DuplicateRegistration(FareEngineError):
    """The customer already rides this service as a regular passenger."""
    code = 'duplicate_registration'
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class AlreadyAllocated(FareEngineError):
    """Surplus for this service has already been allocated."""
    code = 'already_allocated'
    http_status = status.HTTP_409_CONFLICT


class SnapshotImmutableViolation(FareEngineError):
    """A finalised fare snapshot cannot be changed."""
    code = 'snapshot_immutable_violation'
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message=None, **context):
        super().__init__(message, **context)
        logger.critical('Attempted mutation of a fare snapshot: %s %s', self.message, context)


class InvalidBookingTransition(FareEngineError):
    """The booking cannot move to the requested state."""
    code = 'invalid_booking_transition'
    http_status = status.HTTP_409_CONFLICT


class ServiceNotRunning(FareEngineError):
    """The timetable does not operate on this date."""
    code = 'service_not_running'
    http_status = status.HTTP_404_NOT_FOUND


class ServiceNotComplete(FareEngineError):
    """The service still has open bookings and the grace period has not elapsed."""
    code = 'service_not_complete'
    http_status = status.HTTP_409_CONFLICT


def error_response(exc):
    """Render an engine error as a DRF response."""
    body = {'error': exc.code, 'message': exc.message}
    if exc.context:
        body['details'] = {k: str(v) for k, v in exc.context.items()}
    return Response(body, status=exc.http_status)
