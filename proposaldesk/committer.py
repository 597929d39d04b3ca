"""Commit a selected proposal as the task's assignment."""

from __future__ import annotations

import logging

from proposaldesk.client import ResourceClient
from proposaldesk.credentials import Credentials
from proposaldesk.errors import (
    AssignmentRejectedError,
    CommitInProgressError,
    MarketplaceError,
    NoSelectionError,
)
from proposaldesk.schemas import AssignmentResult
from proposaldesk.selection import SelectionTracker

logger = logging.getLogger(__name__)

# The assignment endpoint answers 204 No Content on success
ASSIGNMENT_SUCCESS_STATUS = 204


class AssignmentCommitter:
    """Submits the tracked selection for a task to the server.

    At most one request per task is outstanding at a time. A successful
    commit does not touch local task state; a new aggregation cycle is
    needed to see the ASSIGNED status.
    """

    def __init__(
        self,
        client: ResourceClient,
        credentials: Credentials,
        selections: SelectionTracker,
    ):
        self.client = client
        self.credentials = credentials
        self.selections = selections
        self._in_flight: set[int] = set()

    def is_pending(self, task_id: int) -> bool:
        """True while an assignment request for the task is outstanding."""
        return task_id in self._in_flight

    async def confirm(self, task_id: int) -> AssignmentResult:
        """Assign the selected proposal to the task.

        Args:
            task_id: Task whose selection should be committed

        Returns:
            AssignmentResult for the committed pair

        Raises:
            NoSelectionError: Nothing is selected for the task (no request sent)
            CommitInProgressError: A request for this task is already outstanding
            AssignmentRejectedError: The server answered with a non-success status
            NetworkError: The request never reached the server
        """
        proposal_id = self.selections.get_selection(task_id)
        if proposal_id is None:
            raise NoSelectionError(task_id)

        if task_id in self._in_flight:
            raise CommitInProgressError(task_id)

        self._in_flight.add(task_id)
        try:
            logger.info(f"Assigning proposal {proposal_id} to task {task_id}")
            try:
                status = await self.client.assign_proposal(task_id, proposal_id, self.credentials)
            except MarketplaceError as e:
                # Only answers from the server count as a rejection.
                if e.status_code is None:
                    raise
                raise AssignmentRejectedError(task_id, proposal_id, e.status_code, e.message) from e
        finally:
            self._in_flight.discard(task_id)

        if status != ASSIGNMENT_SUCCESS_STATUS:
            logger.warning(f"Task {task_id}: unexpected assignment status {status}")
            raise AssignmentRejectedError(task_id, proposal_id, status)

        logger.info(f"Proposal {proposal_id} assigned to task {task_id}")
        return AssignmentResult(task_id=task_id, proposal_id=proposal_id, status_code=status)
