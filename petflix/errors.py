"""Domain errors raised by the Petflix services.

Each error carries the HTTP status and a short machine-readable code so the
API layer can render it without knowing about individual services.
"""
from __future__ import annotations


class PetflixError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return "Internal server error"

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(PetflixError):
    status_code = 400
    code = "validation_error"

    @classmethod
    def default_message(cls) -> str:
        return "Invalid request"


class NotFoundError(PetflixError):
    status_code = 404
    code = "not_found"

    @classmethod
    def default_message(cls) -> str:
        return "Not found"


class PermissionDeniedError(PetflixError):
    status_code = 403
    code = "permission_denied"

    @classmethod
    def default_message(cls) -> str:
        return "You are not allowed to do that"


class ConflictError(PetflixError):
    status_code = 409
    code = "conflict"

    @classmethod
    def default_message(cls) -> str:
        return "Conflicting request"


class AlreadySharedError(ConflictError):
    code = "already_shared"

    @classmethod
    def default_message(cls) -> str:
        return "You have already shared this video"


class AlreadyRepostedError(ConflictError):
    code = "already_reposted"

    @classmethod
    def default_message(cls) -> str:
        return "You have already reposted this video"


class AlreadyFollowingError(ConflictError):
    code = "already_following"

    @classmethod
    def default_message(cls) -> str:
        return "You are already following this user"


class SelfRepostError(PetflixError):
    status_code = 400
    code = "self_repost"

    @classmethod
    def default_message(cls) -> str:
        return "You cannot repost your own video"


class NoEligibleOriginalError(PetflixError):
    status_code = 400
    code = "no_eligible_original"

    @classmethod
    def default_message(cls) -> str:
        return "No one else has shared this video yet, so it cannot be reposted"


__all__ = [
    "PetflixError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "AlreadySharedError",
    "AlreadyRepostedError",
    "AlreadyFollowingError",
    "SelfRepostError",
    "NoEligibleOriginalError",
]
