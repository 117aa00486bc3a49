"""
Error taxonomy shared by the service and API layers.

Service modules subclass these bases for their specific failure cases; the
API turns each base into a structured response with a stable `kind`.
"""


class StudyDinoError(Exception):
    kind: str = "internal"
    status_code: int = 500

    # Commit the surrounding transaction even though this error is raised.
    # Used when the failure itself repaired state (e.g. a stale pointer).
    persist_changes: bool = False

    def __init__(self, message: str | None = None):
        self.message = message or (self.__class__.__doc__ or self.kind).strip()
        super().__init__(self.message)


class Unauthorized(StudyDinoError):
    kind = "unauthorized"
    status_code = 401


class Conflict(StudyDinoError):
    kind = "conflict"
    status_code = 409


class NotFound(StudyDinoError):
    kind = "not_found"
    status_code = 404


class Validation(StudyDinoError):
    kind = "validation"
    status_code = 400


class Transient(StudyDinoError):
    """
    Infrastructure failure (database or identity provider). Safe to retry.
    """

    kind = "transient"
    status_code = 503
