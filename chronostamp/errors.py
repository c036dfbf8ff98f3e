from typing import Optional


class ClaimError(Exception):
    """A request-terminal failure with a stable, caller-visible kind."""

    kind = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ClaimError):
    kind = "INVALID_INPUT"
    status_code = 400
    default_message = "Request is missing required fields or has malformed values"


class EventNotFound(ClaimError):
    kind = "EVENT_NOT_FOUND"
    status_code = 404
    default_message = "Event not found"


class AlreadyClaimed(ClaimError):
    kind = "ALREADY_CLAIMED"
    status_code = 409
    default_message = "You have already claimed a ChronoStamp for this event"


class AlreadyRecorded(ClaimError):
    kind = "ALREADY_RECORDED"
    status_code = 409
    default_message = "This claim has already been recorded"


class SoldOut(ClaimError):
    kind = "SOLD_OUT"
    status_code = 410
    default_message = "This event has reached its maximum supply"


class ContractNotDeployed(ClaimError):
    kind = "CONTRACT_NOT_DEPLOYED"
    status_code = 400
    default_message = "This event has no deployed contract yet"


class ClaimingNotYetOpen(ClaimError):
    kind = "CLAIMING_NOT_YET_OPEN"
    status_code = 400
    default_message = "Claiming for this event has not opened yet"


class ClaimingClosed(ClaimError):
    kind = "CLAIMING_CLOSED"
    status_code = 400
    default_message = "Claiming for this event has closed"


class ServerMisconfigured(ClaimError):
    kind = "SERVER_MISCONFIGURED"
    status_code = 500
    default_message = "Signature service is not properly configured"


class StorageUnavailable(ClaimError):
    kind = "STORAGE_UNAVAILABLE"
    status_code = 503
    default_message = "Storage is temporarily unavailable, try again shortly"


class RateLimited(ClaimError):
    kind = "RATE_LIMITED"
    status_code = 429
    default_message = "Too many requests, slow down"


class Unauthorized(ClaimError):
    kind = "UNAUTHORIZED"
    status_code = 401
    default_message = "A valid organizer token is required"


class Forbidden(ClaimError):
    kind = "FORBIDDEN"
    status_code = 403
    default_message = "You do not own this event"


class EventCodeTaken(ClaimError):
    kind = "EVENT_CODE_TAKEN"
    status_code = 409
    default_message = "An event with this code already exists"


class ContractAlreadySet(ClaimError):
    kind = "CONTRACT_ALREADY_SET"
    status_code = 409
    default_message = "This event already has a contract address"


class RequestInProgress(ClaimError):
    kind = "REQUEST_IN_PROGRESS"
    status_code = 409
    default_message = "A request with this Idempotency-Key is still being processed"


# Internal failures below never reach callers verbatim.

class SignerError(Exception):
    pass


class InvalidAddress(SignerError):
    pass


class SignerMisconfigured(SignerError):
    pass


class ClaimConflict(Exception):
    """The claims uniqueness constraint rejected an insert."""


class ChainVerificationFailed(Exception):
    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)
