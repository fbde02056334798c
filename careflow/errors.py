class CareFlowError(Exception):
    """Base class for domain errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def name(self) -> str:
        return type(self).__name__


class ValidationError(CareFlowError):
    status_code = 422


class Forbidden(CareFlowError):
    status_code = 403


class NotFound(CareFlowError):
    status_code = 404


class InvalidTransition(CareFlowError):
    status_code = 409


class ConcurrentModification(CareFlowError):
    status_code = 409


class SlotUnavailable(CareFlowError):
    status_code = 409


class AlreadyConfirmed(CareFlowError):
    status_code = 409


class UnknownTest(CareFlowError):
    status_code = 422


class UpstreamUnavailable(CareFlowError):
    """An external collaborator (AI, blob store, analysis engine) failed."""

    status_code = 503
