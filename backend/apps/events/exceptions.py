from rest_framework import status
from rest_framework.exceptions import APIException


class BookingLinkNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Booking link not found'
    default_code = 'booking_link_not_found'


class OutOfWindow(APIException):
    """Requested time is before the minimum notice or past the advance window."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Requested time is outside the booking window'
    default_code = 'out_of_window'


class SlotUnavailable(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This time slot is no longer available. Please refresh availability and pick another time.'
    default_code = 'slot_unavailable'


class AssignmentFailed(APIException):
    """No eligible team member could take the booking."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'No team member is available for this booking link'
    default_code = 'assignment_failed'


class PartialCommitFailure(APIException):
    """A booking exists but its calendar event could not be written."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Booking was saved but its calendar event could not be created'
    default_code = 'partial_commit_failure'


class InvalidTimezone(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid timezone'
    default_code = 'invalid_timezone'
