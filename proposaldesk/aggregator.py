"""Proposal aggregation: join posted tasks, proposals and freelancers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from proposaldesk.client import ResourceClient
from proposaldesk.config import DEFAULT_MAX_CONCURRENT_FETCHES
from proposaldesk.credentials import Credentials
from proposaldesk.errors import CycleInProgressError, MarketplaceError
from proposaldesk.schemas import (
    AggregationResult,
    CycleState,
    EnrichedProposal,
    Proposal,
    Task,
    User,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", Task, User)


def _first_error(group: BaseExceptionGroup) -> BaseException:
    """Unwrap the first leaf exception of a (possibly nested) group."""
    exc: BaseException = group
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc


def group_by_task(
    tasks: list[Task],
    enriched: list[EnrichedProposal],
) -> dict[int, list[EnrichedProposal]]:
    """Group proposals under their task id.

    Every task id gets a key, even without proposals. Proposals keep their
    relative order.
    """
    grouped: dict[int, list[EnrichedProposal]] = {task.id: [] for task in tasks}
    for proposal in enriched:
        if proposal.task_id in grouped:
            grouped[proposal.task_id].append(proposal)
    return grouped


class ProposalAggregator:
    """Builds the task -> received proposals view for the current user.

    Each call to ``refresh`` is one aggregation cycle that moves the state
    ``idle -> loading -> ready | failed``. The published ``result`` is only
    replaced once the whole cycle has succeeded; a failed cycle clears it and
    records a single error.
    """

    def __init__(
        self,
        client: ResourceClient,
        credentials: Credentials,
        max_concurrent_fetches: int = DEFAULT_MAX_CONCURRENT_FETCHES,
    ):
        """Initialize the aggregator.

        Args:
            client: Resource client used for every fetch
            credentials: Caller credentials threaded into each request
            max_concurrent_fetches: Cap on in-flight detail fetches (0 = unbounded)
        """
        self.client = client
        self.credentials = credentials
        self.max_concurrent_fetches = max_concurrent_fetches
        self._state = CycleState.IDLE
        self._result: AggregationResult | None = None
        self._error: MarketplaceError | None = None
        self._semaphore: asyncio.Semaphore | None = None

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state == CycleState.LOADING

    @property
    def result(self) -> AggregationResult | None:
        """Last published result; None while loading or after a failure."""
        if self._state != CycleState.READY:
            return None
        return self._result

    @property
    def error(self) -> MarketplaceError | None:
        return self._error

    async def refresh(self) -> AggregationResult:
        """Run one aggregation cycle.

        Returns:
            The new AggregationResult

        Raises:
            CycleInProgressError: If a cycle is already loading
            MarketplaceError: If any fetch fails; nothing partial is published
        """
        if self._state == CycleState.LOADING:
            raise CycleInProgressError()

        self._state = CycleState.LOADING
        self._result = None
        self._error = None
        started = time.monotonic()
        logger.info("Aggregation cycle started")

        try:
            result = await self._aggregate()
        except MarketplaceError as e:
            self._error = e
            self._state = CycleState.FAILED
            logger.error(f"Aggregation cycle failed: {e}")
            raise
        except BaseException:
            # Cancelled or unexpected: leave no half-finished cycle behind.
            self._state = CycleState.FAILED
            raise

        self._result = result
        self._state = CycleState.READY
        logger.info(
            f"Aggregation cycle finished in {time.monotonic() - started:.2f}s: "
            f"{len(result.tasks)} tasks, {result.total_proposals} proposals"
        )
        return result

    async def _aggregate(self) -> AggregationResult:
        tasks = await self.client.list_posted_tasks(self.credentials, expired=False)
        tasks = [task for task in tasks if not task.expired]
        task_ids = {task.id for task in tasks}

        # The API cannot filter proposals by poster.
        proposals = await self.client.list_proposals(self.credentials)
        candidates = [p for p in proposals if p.task_id in task_ids]
        logger.debug(
            f"{len(candidates)} of {len(proposals)} proposals target {len(tasks)} owned tasks"
        )

        enriched = await self._enrich_all(candidates)
        return AggregationResult(tasks=tasks, proposals=group_by_task(tasks, enriched))

    async def _enrich_all(self, candidates: list[Proposal]) -> list[EnrichedProposal]:
        """Fetch details for every candidate concurrently; fail on the first error."""
        if not candidates:
            return []

        self._semaphore = (
            asyncio.Semaphore(self.max_concurrent_fetches)
            if self.max_concurrent_fetches > 0
            else None
        )
        try:
            async with asyncio.TaskGroup() as group:
                jobs = [group.create_task(self._enrich(p)) for p in candidates]
        except BaseExceptionGroup as eg:
            raise _first_error(eg) from None

        return [job.result() for job in jobs]

    async def _enrich(self, proposal: Proposal) -> EnrichedProposal:
        async with asyncio.TaskGroup() as group:
            task_job = group.create_task(
                self._limited(self.client.get_task, proposal.task_id)
            )
            user_job = group.create_task(
                self._limited(self.client.get_user, proposal.freelancer_id)
            )

        task = task_job.result()
        user = user_job.result()
        return EnrichedProposal(
            id=proposal.id,
            task_id=proposal.task_id,
            freelancer_id=proposal.freelancer_id,
            task_title=task.title,
            freelancer_username=user.username,
        )

    async def _limited(
        self,
        fetch: Callable[[int, Credentials], Awaitable[ModelT]],
        item_id: int,
    ) -> ModelT:
        guard = self._semaphore if self._semaphore is not None else contextlib.nullcontext()
        async with guard:
            return await fetch(item_id, self.credentials)
