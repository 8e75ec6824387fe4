"""Database models for enrollments and groups.

Cassandra table definitions for:
- Enrollments: partitioned by organization
- Enrollment keys: one row per (organization, course, learner), claimed with
  ``IF NOT EXISTS`` so that a learner can hold only one enrollment per course
- Groups: partitioned by organization; ``seats_taken`` is only ever written
  through compare-and-set
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from lms.core.clock import ensure_utc_aware, utc_now
from lms.utils import load_json


class EnrollmentStatus(str, Enum):
    """Enrollment lifecycle status."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    WAITLISTED = "waitlisted"


# Statuses that do not hold a group seat
SEATLESS_STATUSES = frozenset(
    {EnrollmentStatus.WAITLISTED.value, EnrollmentStatus.CANCELLED.value}
)

# Nil UUID clears the group on update
NIL_UUID = UUID(int=0)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    organization_id UUID,
    id UUID,
    course_id UUID,
    user_id UUID,
    group_id UUID,
    status TEXT,
    progress DOUBLE,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    metadata TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    revision INT,
    PRIMARY KEY (organization_id, id)
)
"""

ENROLLMENT_KEYS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollment_keys (
    organization_id UUID,
    course_id UUID,
    user_id UUID,
    enrollment_id UUID,
    PRIMARY KEY ((organization_id, course_id, user_id))
)
"""

GROUPS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.groups (
    organization_id UUID,
    id UUID,
    course_id UUID,
    name TEXT,
    description TEXT,
    capacity INT,
    seats_taken INT,
    metadata TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (organization_id, id)
)
"""

ENROLLMENTS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENT_KEYS_TABLE_CQL,
    GROUPS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """Membership of a learner in a course.

    Attributes:
        id: Unique identifier (UUID)
        organization_id: Owning tenant
        course_id: Course the learner is enrolled in
        user_id: Learner
        group_id: Optional group (cohort) holding a seat for the learner
        status: Lifecycle status (see ``EnrollmentStatus``)
        progress: Aggregate percentage of completed modules (0-100)
        started_at: Set when the enrollment became active
        completed_at: Set when progress reached 100
        metadata: Free-form JSON object
        revision: Bumped by every update; conditional writes compare it
    """

    def __init__(
        self,
        organization_id: UUID,
        course_id: UUID,
        user_id: UUID,
        id: UUID | None = None,
        group_id: UUID | None = None,
        status: str = EnrollmentStatus.ACTIVE.value,
        progress: float = 0.0,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        metadata: dict[str, Any] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        revision: int = 0,
    ):
        self.id = id or uuid4()
        self.organization_id = organization_id
        self.course_id = course_id
        self.user_id = user_id
        self.group_id = group_id
        self.status = status
        self.progress = progress
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.metadata = metadata
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at
        self.revision = revision

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            id=row.id,
            organization_id=row.organization_id,
            course_id=row.course_id,
            user_id=row.user_id,
            group_id=row.group_id,
            status=row.status,
            progress=row.progress or 0.0,
            started_at=row.started_at,
            completed_at=row.completed_at,
            metadata=load_json(row.metadata),
            created_at=row.created_at,
            updated_at=row.updated_at,
            revision=row.revision or 0,
        )

    @property
    def occupies_seat(self) -> bool:
        """Whether this enrollment counts against its group's capacity."""
        return self.group_id is not None and self.status not in SEATLESS_STATUSES

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "course_id": self.course_id,
            "user_id": self.user_id,
            "group_id": self.group_id,
            "status": self.status,
            "progress": self.progress,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "metadata": self.metadata,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Enrollment {self.user_id} in {self.course_id} ({self.status})>"


class Group:
    """Capacity-bounded cohort, optionally bound to one course.

    Attributes:
        capacity: Maximum seats; ``None`` means unbounded
        seats_taken: Enrollments referencing the group that hold a seat
    """

    def __init__(
        self,
        organization_id: UUID,
        name: str = "",
        id: UUID | None = None,
        course_id: UUID | None = None,
        description: str | None = None,
        capacity: int | None = None,
        seats_taken: int = 0,
        metadata: dict[str, Any] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.organization_id = organization_id
        self.course_id = course_id
        self.name = name
        self.description = description
        self.capacity = capacity
        self.seats_taken = seats_taken
        self.metadata = metadata
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    @classmethod
    def from_row(cls, row: Any) -> "Group":
        """Create Group instance from Cassandra row."""
        return cls(
            id=row.id,
            organization_id=row.organization_id,
            course_id=row.course_id,
            name=row.name,
            description=row.description,
            capacity=row.capacity,
            seats_taken=row.seats_taken or 0,
            metadata=load_json(row.metadata),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def is_bounded(self) -> bool:
        return self.capacity is not None and self.capacity > 0

    @property
    def is_full(self) -> bool:
        return self.is_bounded and self.seats_taken >= self.capacity

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "course_id": self.course_id,
            "name": self.name,
            "description": self.description,
            "capacity": self.capacity,
            "seats_taken": self.seats_taken,
            "metadata": self.metadata,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Group {self.name} ({self.seats_taken}/{self.capacity})>"
