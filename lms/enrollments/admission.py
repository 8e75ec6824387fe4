"""Group admission control.

A group's occupied seats live in a single counter column that is only changed
with ``UPDATE ... IF seats_taken = <read value>``. Reserving a seat therefore
checks capacity and takes the seat in one conditional write: two concurrent
enrollments cannot both take the last seat.

Releasing a seat never promotes a waitlisted enrollment.
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from lms.core.errors import ContentionError


if TYPE_CHECKING:
    from lms.enrollments.repository import EnrollmentRepository

logger = structlog.get_logger(__name__)


class SeatReservationError(ContentionError):
    """The seat counter kept changing under us; not a domain outcome."""

    public_message = "Group is busy, please retry"

    def __init__(self, group_id: UUID, attempts: int):
        self.group_id = group_id
        super().__init__("seats of group", group_id, attempts)


class GroupAdmissionController:
    """Reserves and releases group seats through compare-and-set."""

    def __init__(self, repository: "EnrollmentRepository", max_attempts: int = 8):
        self.repository = repository
        self.max_attempts = max_attempts

    async def reserve(
        self,
        organization_id: UUID,
        group_id: UUID,
        enforce_capacity: bool = True,
    ) -> bool:
        """Take one seat in the group.

        Args:
            organization_id: Tenant of the group
            group_id: Group to take the seat in
            enforce_capacity: When False the seat is taken even if the group
                is full (administrative overrides)

        Returns:
            True if a seat was taken, False if the group is at capacity.
            A group that no longer exists admits without counting.

        Raises:
            SeatReservationError: If every compare-and-set round lost a race
        """
        for attempt in range(1, self.max_attempts + 1):
            group = await self.repository.get_group(organization_id, group_id)
            if group is None:
                return True
            if enforce_capacity and group.is_full:
                return False

            current = group.seats_taken
            if await self.repository.compare_and_set_seats(
                organization_id, group_id, current, current + 1
            ):
                logger.debug(
                    "group_seat_reserved",
                    group_id=str(group_id),
                    seats_taken=current + 1,
                    capacity=group.capacity,
                )
                return True

            logger.info(
                "group_seat_contention",
                group_id=str(group_id),
                attempt=attempt,
                operation="reserve",
            )

        raise SeatReservationError(group_id, self.max_attempts)

    async def release(self, organization_id: UUID, group_id: UUID) -> None:
        """Give one seat back. A missing group or an empty counter is a no-op.

        Raises:
            SeatReservationError: If every compare-and-set round lost a race
        """
        for attempt in range(1, self.max_attempts + 1):
            group = await self.repository.get_group(organization_id, group_id)
            if group is None or group.seats_taken <= 0:
                return

            current = group.seats_taken
            if await self.repository.compare_and_set_seats(
                organization_id, group_id, current, current - 1
            ):
                logger.debug(
                    "group_seat_released",
                    group_id=str(group_id),
                    seats_taken=current - 1,
                )
                return

            logger.info(
                "group_seat_contention",
                group_id=str(group_id),
                attempt=attempt,
                operation="release",
            )

        raise SeatReservationError(group_id, self.max_attempts)
