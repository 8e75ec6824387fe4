"""Domain error kinds shared by every service.

Callers branch on the error ``code``; each kind maps to one stable HTTP status
in the domain ``dependencies`` modules. ``ContentionError`` is not a domain
outcome: a compare-and-set loop gave up and the request may simply be retried
(503). Anything else (storage failures included) surfaces as a 500.
"""


class DomainError(Exception):
    """Base domain error."""

    code = "domain_error"
    default_message = "Domain error"

    def __init__(self, message: str | None = None, code: str | None = None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class InvalidInputError(DomainError):
    """Malformed or cross-tenant reference, bad enum, non-permutation list."""

    code = "invalid_input"
    default_message = "Invalid input"


class NotFoundError(DomainError):
    """Referenced entity absent within the caller's organization."""

    code = "not_found"
    default_message = "Not found"


class AlreadyEnrolledError(DomainError):
    """Enrollment uniqueness violation on (organization, course, learner)."""

    code = "already_enrolled"
    default_message = "Learner already enrolled in this course"


class BlockedError(DomainError):
    """Prerequisite modules are not completed."""

    code = "blocked"
    default_message = "Previous modules are not completed"


class SlugTakenError(DomainError):
    """Course slug already used inside the organization."""

    code = "slug_taken"
    default_message = "Slug already in use"


class ContentionError(Exception):
    """Every compare-and-set round on a row lost a race."""

    public_message = "Resource is busy, please retry"

    def __init__(self, entity: str, entity_id: object, attempts: int):
        self.entity = entity
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Could not update {entity} {entity_id} after {attempts} attempts"
        )
