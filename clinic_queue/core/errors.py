from fastapi import HTTPException, status

# Queue exceptions
class QueueError(HTTPException):
    """Base class for expected, recoverable queue conditions."""
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Queue Error"
    default_detail = "Queue operation failed"

    def __init__(self, detail: str = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
        )

class ValidationError(QueueError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error = "Validation Error"
    default_detail = "Invalid queue request"

class NotFoundError(QueueError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"
    default_detail = "Queue entry not found"

class EmptyQueueError(QueueError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Empty Queue"
    default_detail = "No waiting patients"

class AlreadyServingError(QueueError):
    status_code = status.HTTP_409_CONFLICT
    error = "Already Serving"
    default_detail = "A patient is already in progress; complete it before calling the next one"

class InvalidTransitionError(QueueError):
    status_code = status.HTTP_409_CONFLICT
    error = "Invalid Transition"
    default_detail = "Transition not allowed from the entry's current status"

class StoreUnavailableError(QueueError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "Service Unavailable"
    default_detail = "Queue storage is unavailable; re-check queue status before retrying"
