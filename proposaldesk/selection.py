"""Per-task selection of one received proposal."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from proposaldesk.errors import InvalidSelectionError
from proposaldesk.schemas import AggregationResult

if TYPE_CHECKING:
    from proposaldesk.aggregator import ProposalAggregator

logger = logging.getLogger(__name__)

ResultSource = Callable[[], "AggregationResult | None"]


class SelectionTracker:
    """Holds at most one chosen proposal id per task id.

    Selections are client-side only and live independently of aggregation
    refreshes. When a result source is configured, ``select`` checks that the
    proposal was actually received for the task.
    """

    def __init__(self, result_source: ResultSource | None = None):
        self._result_source = result_source
        self._selected: dict[int, int] = {}

    @classmethod
    def for_aggregator(cls, aggregator: ProposalAggregator) -> SelectionTracker:
        """Validate selections against the aggregator's current result."""
        return cls(lambda: aggregator.result)

    def select(self, task_id: int, proposal_id: int) -> None:
        """Choose a proposal for a task, replacing any earlier choice."""
        if self._result_source is not None:
            self._validate(task_id, proposal_id, self._result_source())

        previous = self._selected.get(task_id)
        self._selected[task_id] = proposal_id
        if previous is not None and previous != proposal_id:
            logger.debug(f"Task {task_id}: selection changed {previous} -> {proposal_id}")
        else:
            logger.debug(f"Task {task_id}: selected proposal {proposal_id}")

    def get_selection(self, task_id: int) -> int | None:
        return self._selected.get(task_id)

    def is_selected(self, task_id: int, proposal_id: int) -> bool:
        return self._selected.get(task_id) == proposal_id

    def clear(self, task_id: int) -> None:
        self._selected.pop(task_id, None)

    def selections(self) -> dict[int, int]:
        """Snapshot of all current selections."""
        return dict(self._selected)

    def prune(self, result: AggregationResult) -> list[int]:
        """Drop selections that no longer match a received proposal.

        Returns:
            Task ids whose selection was removed
        """
        stale = [
            task_id
            for task_id, proposal_id in self._selected.items()
            if result.find(task_id, proposal_id) is None
        ]
        for task_id in stale:
            del self._selected[task_id]
        if stale:
            logger.info(f"Pruned stale selections for tasks {stale}")
        return stale

    @staticmethod
    def _validate(task_id: int, proposal_id: int, result: AggregationResult | None) -> None:
        if result is None:
            raise InvalidSelectionError(task_id, proposal_id, "no proposals have been loaded")
        if task_id not in result.proposals:
            raise InvalidSelectionError(task_id, proposal_id, "task is not one of your open tasks")
        if result.find(task_id, proposal_id) is None:
            raise InvalidSelectionError(task_id, proposal_id, "proposal was not received for this task")
