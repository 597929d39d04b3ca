"""Async resource client for the marketplace REST API."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from proposaldesk.config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from proposaldesk.credentials import Credentials
from proposaldesk.errors import (
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)
from proposaldesk.schemas import Proposal, Task, TaskCreation, User

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Endpoints, relative to the REST base path
TASKS_PATH = "/tasks"
POSTED_TASKS_PATH = "/tasks/posted"
PROPOSALS_PATH = "/proposals"
USERS_PATH = "/users"
ASSIGN_PATH = "/tasks/posted/{task_id}/proposals/{proposal_id}"

TASK_CREATED_STATUSES = (200, 201)

# Keys the server may use for a human-readable error
_MESSAGE_KEYS = ("message", "detail", "error")


def _server_message(response: httpx.Response) -> str:
    """Extract the server-supplied error message from a response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()

    if isinstance(payload, dict):
        for key in _MESSAGE_KEYS:
            value = payload.get(key)
            if value:
                return str(value)
    return response.text.strip()


def _raise_for_status(response: httpx.Response, path: str) -> None:
    """Map a non-2xx response onto the error taxonomy."""
    if response.is_success:
        return

    status = response.status_code
    message = _server_message(response) or response.reason_phrase
    logger.warning(f"{response.request.method} {path} failed: HTTP {status} {message}")

    if status in (401, 403):
        raise UnauthorizedError(f"Unauthorized: {message}", status_code=status)
    if status == 404:
        raise NotFoundError(f"Not found: {path}", status_code=status)
    raise ServerError(message, status_code=status)


def _parse(schema: type[ModelT], payload: Any, path: str) -> ModelT:
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Unexpected {schema.__name__} payload from {path}: {e.error_count()} validation error(s)",
        ) from e


class ResourceClient:
    """Authenticated access to tasks, proposals and users.

    Every call takes the caller's ``Credentials`` explicitly; a missing token
    raises ``UnauthorizedError`` before any request is sent.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: REST base path, e.g. "http://localhost:8080/rest"
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used to run against an in-process app)
        """
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> ResourceClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        credentials: Credentials,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        token = credentials.require_token()
        logger.debug(f"{method} {path} params={params}")

        try:
            response = await self._http.request(
                method,
                path,
                params=params,
                json=json,
                headers={"Authorization": token},
            )
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {e}")
            raise NetworkError(f"Request to {path} timed out") from e
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise NetworkError(f"Could not reach {self.base_url}: {e}") from e

        _raise_for_status(response, path)
        return response

    @staticmethod
    def _json(response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response from {path} is not JSON") from e

    # --- Generic primitives ---

    async def fetch_collection(
        self,
        path: str,
        credentials: Credentials,
        schema: type[ModelT],
        params: dict[str, Any] | None = None,
    ) -> list[ModelT]:
        """GET a collection and validate each item against ``schema``."""
        response = await self._request("GET", path, credentials, params=params)
        payload = self._json(response, path)
        if not isinstance(payload, list):
            raise MalformedResponseError(f"Expected a list from {path}, got {type(payload).__name__}")
        return [_parse(schema, item, path) for item in payload]

    async def fetch_by_id(
        self,
        path: str,
        item_id: int,
        credentials: Credentials,
        schema: type[ModelT],
    ) -> ModelT:
        """GET a single resource by id."""
        item_path = f"{path}/{item_id}"
        response = await self._request("GET", item_path, credentials)
        return _parse(schema, self._json(response, item_path), item_path)

    async def post_action(
        self,
        path: str,
        credentials: Credentials,
        body: Any = None,
    ) -> int:
        """POST an action and return the (2xx) status code."""
        response = await self._request("POST", path, credentials, json=body)
        return response.status_code

    # --- Typed endpoints ---

    async def list_posted_tasks(self, credentials: Credentials, expired: bool = False) -> list[Task]:
        """Tasks posted by the caller, filtered by expiry."""
        return await self.fetch_collection(
            POSTED_TASKS_PATH, credentials, Task, params={"expired": expired}
        )

    async def list_created_tasks(
        self,
        credentials: Credentials,
        username: str | None = None,
    ) -> list[Task]:
        """Tasks created by ``username`` (defaults to the caller)."""
        created_by = username or credentials.username
        params = {"createdBy": created_by} if created_by else None
        return await self.fetch_collection(TASKS_PATH, credentials, Task, params=params)

    async def get_task(self, task_id: int, credentials: Credentials) -> Task:
        return await self.fetch_by_id(TASKS_PATH, task_id, credentials, Task)

    async def list_proposals(self, credentials: Credentials) -> list[Proposal]:
        return await self.fetch_collection(PROPOSALS_PATH, credentials, Proposal)

    async def get_user(self, user_id: int, credentials: Credentials) -> User:
        return await self.fetch_by_id(USERS_PATH, user_id, credentials, User)

    async def assign_proposal(
        self,
        task_id: int,
        proposal_id: int,
        credentials: Credentials,
    ) -> int:
        """Bind the proposal's freelancer to the task; returns the status code."""
        path = ASSIGN_PATH.format(task_id=task_id, proposal_id=proposal_id)
        return await self.post_action(path, credentials)

    async def create_task(self, creation: TaskCreation, credentials: Credentials) -> Task | None:
        """Create a task.

        Returns:
            The created Task, or None when the server answers without a body

        Raises:
            ServerError: If the server answers with a 2xx other than 200/201
        """
        response = await self._request(
            "POST",
            TASKS_PATH,
            credentials,
            json=creation.model_dump(mode="json", by_alias=True),
        )
        if response.status_code not in TASK_CREATED_STATUSES:
            logger.warning(f"POST {TASKS_PATH} answered HTTP {response.status_code}")
            raise ServerError(
                f"Unexpected status creating task: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return _parse(Task, self._json(response, TASKS_PATH), TASKS_PATH)
