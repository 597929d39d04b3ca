"""Pytest configuration and fixtures for ProposalDesk tests.

The marketplace is simulated by an in-memory FastAPI app that follows the
REST contract of the real server; the client reaches it through
``httpx.ASGITransport``.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from proposaldesk.client import ResourceClient
from proposaldesk.credentials import Credentials

BASE_URL = "http://marketplace.test/rest"
ALICE_TOKEN = "token-alice"
BOB_TOKEN = "token-bob"


@dataclass
class MarketplaceState:
    """Backing data and knobs for the fake marketplace."""

    tokens: dict[str, str] = field(default_factory=dict)
    users: dict[int, dict[str, Any]] = field(default_factory=dict)
    tasks: dict[int, dict[str, Any]] = field(default_factory=dict)
    proposals: list[dict[str, Any]] = field(default_factory=list)
    # path -> forced HTTP status
    failures: dict[str, int] = field(default_factory=dict)
    detail_delay: float = 0.0
    assign_delay: float = 0.0
    requests: list[tuple[str, str]] = field(default_factory=list)
    in_flight: int = 0
    peak_in_flight: int = 0

    def paths(self, method: str = "GET") -> list[str]:
        return [path for m, path in self.requests if m == method]


def create_marketplace_app(state: MarketplaceState) -> FastAPI:
    """Build a FastAPI app serving the /rest endpoints from ``state``."""
    app = FastAPI(title="Fake Marketplace")

    @app.middleware("http")
    async def record_requests(request: Request, call_next):
        state.requests.append((request.method, request.url.path))
        forced = state.failures.get(request.url.path)
        if forced is not None:
            return JSONResponse(
                status_code=forced,
                content={"message": f"Injected failure for {request.url.path}"},
            )

        state.in_flight += 1
        state.peak_in_flight = max(state.peak_in_flight, state.in_flight)
        try:
            return await call_next(request)
        finally:
            state.in_flight -= 1

    def _caller(authorization: str | None) -> str:
        if not authorization or authorization not in state.tokens:
            raise HTTPException(status_code=401, detail="Invalid or missing token")
        return state.tokens[authorization]

    @app.get("/rest/tasks/posted")
    async def posted_tasks(expired: bool = False, authorization: str | None = Header(default=None)):
        username = _caller(authorization)
        return [
            task
            for task in state.tasks.values()
            if task["createdBy"] == username and task["expired"] == expired
        ]

    @app.get("/rest/tasks")
    async def list_tasks(createdBy: str | None = None, authorization: str | None = Header(default=None)):
        _caller(authorization)
        return [
            task
            for task in state.tasks.values()
            if createdBy is None or task["createdBy"] == createdBy
        ]

    @app.get("/rest/tasks/{task_id}")
    async def get_task(task_id: int, authorization: str | None = Header(default=None)):
        _caller(authorization)
        await asyncio.sleep(state.detail_delay)
        if task_id not in state.tasks:
            raise HTTPException(status_code=404, detail="Task not found")
        return state.tasks[task_id]

    @app.get("/rest/proposals")
    async def list_proposals(authorization: str | None = Header(default=None)):
        _caller(authorization)
        return state.proposals

    @app.get("/rest/users/{user_id}")
    async def get_user(user_id: int, authorization: str | None = Header(default=None)):
        _caller(authorization)
        await asyncio.sleep(state.detail_delay)
        if user_id not in state.users:
            raise HTTPException(status_code=404, detail="User not found")
        return state.users[user_id]

    @app.post("/rest/tasks/posted/{task_id}/proposals/{proposal_id}")
    async def assign(task_id: int, proposal_id: int, authorization: str | None = Header(default=None)):
        username = _caller(authorization)
        await asyncio.sleep(state.assign_delay)

        task = state.tasks.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        if task["createdBy"] != username:
            raise HTTPException(status_code=403, detail="Not your task")

        proposal = next((p for p in state.proposals if p["id"] == proposal_id), None)
        if proposal is None or proposal["taskId"] != task_id:
            raise HTTPException(status_code=409, detail="Proposal does not belong to task")
        if task["status"] != "UNASSIGNED":
            raise HTTPException(status_code=409, detail="Task already assigned")

        task["status"] = "ASSIGNED"
        task["freelancerId"] = proposal["freelancerId"]
        return Response(status_code=204)

    @app.post("/rest/tasks", status_code=201)
    async def create_task(request: Request, authorization: str | None = Header(default=None)):
        _caller(authorization)
        body = await request.json()
        task_id = max(state.tasks, default=0) + 1
        state.tasks[task_id] = {
            "id": task_id,
            "title": body["title"],
            "problem": body["problem"],
            "status": body["taskStatus"],
            "createdBy": body["username"],
            "expired": False,
            "payment": body["payment"],
            "deadline": body["deadline"],
            "type": body["type"],
        }
        return state.tasks[task_id]

    return app


def _task(task_id: int, title: str, owner: str, expired: bool = False) -> dict[str, Any]:
    return {
        "id": task_id,
        "title": title,
        "problem": f"{title} description",
        "status": "UNASSIGNED",
        "createdBy": owner,
        "expired": expired,
    }


@pytest.fixture
def marketplace_state() -> MarketplaceState:
    """Alice owns tasks 1 and 3 (and expired task 4); Bob owns task 2."""
    return MarketplaceState(
        tokens={ALICE_TOKEN: "alice", BOB_TOKEN: "bob"},
        users={
            1: {"id": 1, "username": "alice", "email": "alice@example.com"},
            2: {"id": 2, "username": "bob", "email": "bob@example.com"},
            5: {"id": 5, "username": "erin", "email": "erin@example.com"},
            7: {"id": 7, "username": "frank", "email": "frank@example.com"},
            99: {"id": 99, "username": "dana", "email": "dana@example.com"},
        },
        tasks={
            1: _task(1, "Logo", "alice"),
            2: _task(2, "Translation", "bob"),
            3: _task(3, "Website", "alice"),
            4: _task(4, "Old banner", "alice", expired=True),
        },
        proposals=[
            {"id": 10, "taskId": 1, "freelancerId": 99},
            {"id": 11, "taskId": 2, "freelancerId": 5},
            {"id": 12, "taskId": 1, "freelancerId": 7},
            {"id": 13, "taskId": 4, "freelancerId": 5},
        ],
    )


@pytest.fixture
def marketplace_app(marketplace_state: MarketplaceState) -> FastAPI:
    return create_marketplace_app(marketplace_state)


@pytest.fixture
def make_client(marketplace_app: FastAPI):
    """Factory for ResourceClients wired to the fake marketplace."""

    def _make(*args: Any, **kwargs: Any) -> ResourceClient:
        return ResourceClient(
            base_url=BASE_URL,
            transport=httpx.ASGITransport(app=marketplace_app),
        )

    return _make


@pytest.fixture
def alice() -> Credentials:
    return Credentials(auth_token=ALICE_TOKEN, username="alice", email="alice@example.com")


@pytest.fixture
def anonymous() -> Credentials:
    return Credentials(username="alice", email="alice@example.com")


@pytest.fixture
def session_path(tmp_path):
    """Temporary session file location."""
    return tmp_path / "session.json"
