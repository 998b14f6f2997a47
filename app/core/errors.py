"""
Domain errors raised by the matching, grouping and agenda services.

Every error carries the HTTP status and the user-readable message the API
returns for it, so routes can translate them without a lookup table.
"""
from starlette import status


class StudyMatchError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "An unexpected error occurred"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ProfileIncomplete(StudyMatchError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Please complete your profile first"


class NoCandidates(StudyMatchError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "No potential matches found"


class NoMatches(StudyMatchError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "No compatible matches found"


class EmbeddingServiceUnavailable(StudyMatchError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "AI matching service unavailable. Please check OpenAI API key configuration."


class AgendaServiceUnavailable(StudyMatchError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "AI agenda service unavailable. Please check OpenAI API key configuration."


class GroupAssemblyFailed(StudyMatchError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Failed to create study group"


class DimensionMismatch(ValueError):
    """Raised when two vectors of different lengths are compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Cannot compare vectors of dimension {left} and {right}")
