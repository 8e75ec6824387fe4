"""Database models for the course catalog.

Cassandra table definitions for:
- Courses: partitioned by organization
- Course slugs: per-organization uniqueness claims (lightweight transactions)
- Modules: partitioned by course, ordered by an explicit position
- Lookup table: module id -> course and organization

Positions are plain integer ranks. Prerequisite queries compare ranks, so gaps
left by removed modules are harmless.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from lms.core.clock import ensure_utc_aware, utc_now
from lms.utils import load_json


class CourseStatus(str, Enum):
    """Course publication status."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ModuleType(str, Enum):
    """Kinds of module content a course may contain."""

    SCORM = "scorm"
    PDF = "pdf"
    VIDEO = "video"
    ARTICLE = "article"
    QUIZ = "quiz"


DEFAULT_MODULE_STATUS = "active"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    organization_id UUID,
    id UUID,
    title TEXT,
    slug TEXT,
    description TEXT,
    status TEXT,
    version INT,
    metadata TEXT,
    published_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (organization_id, id)
)
"""

COURSE_SLUGS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_slugs (
    organization_id UUID,
    slug TEXT,
    course_id UUID,
    PRIMARY KEY ((organization_id, slug))
)
"""

MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules (
    course_id UUID,
    id UUID,
    organization_id UUID,
    title TEXT,
    module_type TEXT,
    position INT,
    duration_seconds INT,
    status TEXT,
    content_id UUID,
    data TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (course_id, id)
)
"""

MODULES_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules_by_id (
    id UUID PRIMARY KEY,
    course_id UUID,
    organization_id UUID
)
"""

COURSES_TABLES_CQL = [
    COURSES_TABLE_CQL,
    COURSE_SLUGS_TABLE_CQL,
    MODULES_TABLE_CQL,
    MODULES_BY_ID_TABLE_CQL,
]


# ==============================================================================
# Helper Functions
# ==============================================================================


def sanitize_slug(value: str) -> str:
    """Normalize a slug: lower-case, dash-separated, no leading/trailing dashes."""
    slug = value.strip().lower().replace(" ", "-").replace("_", "-")
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def normalize_module_type(value: str) -> str:
    return value.strip().lower()


def allowed_module_types() -> list[str]:
    """Module types accepted by the catalog, sorted."""
    return sorted(t.value for t in ModuleType)


# ==============================================================================
# Entity Classes
# ==============================================================================


class Course:
    """Course entity owned by one organization.

    Attributes:
        id: Unique identifier (UUID)
        organization_id: Owning tenant
        title: Course title
        slug: URL-friendly identifier, unique per organization
        description: Course description
        status: Publication status (draft, published, archived)
        version: Content version, starts at 1
        metadata: Free-form JSON object
        published_at: Last publication timestamp
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        organization_id: UUID,
        title: str = "",
        slug: str = "",
        id: UUID | None = None,
        description: str | None = None,
        status: str = CourseStatus.DRAFT.value,
        version: int = 1,
        metadata: dict[str, Any] | None = None,
        published_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.organization_id = organization_id
        self.title = title
        self.slug = slug
        self.description = description
        self.status = status
        self.version = version
        self.metadata = metadata
        self.published_at = ensure_utc_aware(published_at)
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            organization_id=row.organization_id,
            title=row.title,
            slug=row.slug,
            description=row.description,
            status=row.status,
            version=row.version or 1,
            metadata=load_json(row.metadata),
            published_at=row.published_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "status": self.status,
            "version": self.version,
            "metadata": self.metadata,
            "published_at": self.published_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Course {self.slug} ({self.status})>"


class Module:
    """Module entity, exclusively owned by one course.

    Attributes:
        id: Unique identifier (UUID)
        course_id: Owning course
        organization_id: Tenant of the owning course
        title: Module title
        module_type: One of ``ModuleType``
        position: Zero-based rank within the course; defines prerequisite order
        duration_seconds: Expected duration
        status: Module status, ``active`` on creation
        content_id: Reference to externally stored content
        data: Free-form JSON payload
    """

    def __init__(
        self,
        course_id: UUID,
        organization_id: UUID,
        title: str = "",
        module_type: str = ModuleType.ARTICLE.value,
        position: int = 0,
        id: UUID | None = None,
        duration_seconds: int | None = None,
        status: str = DEFAULT_MODULE_STATUS,
        content_id: UUID | None = None,
        data: dict[str, Any] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.course_id = course_id
        self.organization_id = organization_id
        self.title = title
        self.module_type = module_type
        self.position = position
        self.duration_seconds = duration_seconds
        self.status = status
        self.content_id = content_id
        self.data = data
        self.created_at = ensure_utc_aware(created_at) or utc_now()
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    @classmethod
    def from_row(cls, row: Any) -> "Module":
        """Create Module instance from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            organization_id=row.organization_id,
            title=row.title,
            module_type=row.module_type,
            position=row.position,
            duration_seconds=row.duration_seconds,
            status=row.status,
            content_id=row.content_id,
            data=load_json(row.data),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "course_id": self.course_id,
            "organization_id": self.organization_id,
            "title": self.title,
            "module_type": self.module_type,
            "position": self.position,
            "duration_seconds": self.duration_seconds,
            "status": self.status,
            "content_id": self.content_id,
            "data": self.data,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Module {self.title} #{self.position} ({self.module_type})>"
