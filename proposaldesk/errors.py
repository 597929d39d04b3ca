"""Error taxonomy for marketplace calls and the proposal workflow."""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base class for every failure surfaced by ProposalDesk."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnauthorizedError(MarketplaceError):
    """Raised when the auth token is missing or refused by the server."""

    pass


class NetworkError(MarketplaceError):
    """Raised when the request never produced an HTTP response."""

    pass


class ServerError(MarketplaceError):
    """Raised for a non-2xx response carrying a server-supplied message."""

    pass


class NotFoundError(ServerError):
    """Raised when the requested resource does not exist."""

    pass


class MalformedResponseError(ServerError):
    """Raised when a 2xx body does not match the expected schema."""

    pass


class NoSelectionError(MarketplaceError):
    """Raised when confirming a task that has no chosen proposal."""

    def __init__(self, task_id: int):
        super().__init__(f"No proposal selected for task {task_id}")
        self.task_id = task_id


class InvalidSelectionError(MarketplaceError):
    """Raised when a proposal is selected for a task it does not belong to."""

    def __init__(self, task_id: int, proposal_id: int, reason: str):
        super().__init__(f"Cannot select proposal {proposal_id} for task {task_id}: {reason}")
        self.task_id = task_id
        self.proposal_id = proposal_id


class AssignmentRejectedError(MarketplaceError):
    """Raised when the server declines an assignment."""

    def __init__(
        self,
        task_id: int,
        proposal_id: int,
        status_code: int,
        server_message: str = "",
    ):
        detail = f": {server_message}" if server_message else ""
        super().__init__(
            f"Assignment of proposal {proposal_id} to task {task_id} rejected "
            f"(HTTP {status_code}){detail}",
            status_code=status_code,
        )
        self.task_id = task_id
        self.proposal_id = proposal_id
        self.server_message = server_message


class CycleInProgressError(MarketplaceError):
    """Raised when a refresh is requested while another one is loading."""

    def __init__(self) -> None:
        super().__init__("An aggregation cycle is already in progress")


class CommitInProgressError(MarketplaceError):
    """Raised when a task already has an outstanding assignment request."""

    def __init__(self, task_id: int):
        super().__init__(f"Assignment for task {task_id} is already in progress")
        self.task_id = task_id
