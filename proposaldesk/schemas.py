"""Pydantic schemas for marketplace resources and workflow results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    """Lifecycle status of a posted task.

    Statuses the server reports that are not listed here are kept on
    ``Task.status`` as plain strings.
    """

    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"


class TaskType(str, Enum):
    """Task categories accepted by the marketplace."""

    TRANSLATION_AND_LANGUAGE_SERVICES = "TranslationAndLanguageServices"
    DATA_ENTRY_AND_VIRTUAL_ASSISTANCE = "DataEntryAndVirtualAssistance"
    CONSULTING_AND_BUSINESS_SERVICES = "ConsultingAndBusinessServices"
    CREATIVE_AND_ARTISTIC_SERVICES = "CreativeAndArtisticServices"
    GRAPHIC_DESIGN_AND_MULTIMEDIA = "GraphicDesignAndMultimedia"
    ENGINEERING_AND_ARCHITECTURE = "EngineeringAndArchitecture"
    WRITING_AND_CONTENT_CREATION = "WritingAndContentCreation"
    PROGRAMMING_AND_DEVELOPMENT = "ProgrammingAndDevelopment"
    GAMING_AND_VR_AR_DEVELOPMENT = "GamingAndVrArDevelopment"
    TUTORING_AND_EDUCATION = "TutoringAndEducation"
    SALES_AND_MARKETING = "SalesAndMarketing"
    DIGITAL_MARKETING = "DigitalMarketing"


class CycleState(str, Enum):
    """State of the proposal aggregation cycle."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class WireModel(BaseModel):
    """Base for payloads exchanged with the REST API (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Resources ---


class Task(WireModel):
    """A unit of work posted by a client user."""

    id: int
    title: str
    description: str = Field(
        default="",
        validation_alias=AliasChoices("description", "problem"),
    )
    status: TaskStatus | str = Field(
        default=TaskStatus.UNASSIGNED,
        union_mode="left_to_right",
        validation_alias=AliasChoices("status", "taskStatus"),
    )
    created_by: str | None = Field(
        default=None,
        validation_alias=AliasChoices("createdBy", "created_by", "customer"),
    )
    expired: bool = False
    payment: float | None = None
    deadline: datetime | None = None
    type: TaskType | str | None = Field(default=None, union_mode="left_to_right")

    @field_validator("created_by", mode="before")
    @classmethod
    def _username_from_user(cls, value: Any) -> Any:
        # The server may embed the whole customer object instead of a name.
        if isinstance(value, dict):
            return value.get("username")
        return value


class Proposal(WireModel):
    """An offer submitted by a freelancer against a task."""

    id: int
    task_id: int
    freelancer_id: int


class User(WireModel):
    """Public profile of a marketplace user."""

    id: int
    username: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    rating: int | None = None


class EnrichedProposal(Proposal):
    """Proposal joined with its task title and freelancer username."""

    task_title: str
    freelancer_username: str


# --- Request Schemas ---


class TaskCreation(WireModel):
    """Payload for POST /tasks."""

    username: str
    email: str
    title: str = Field(..., min_length=1)
    problem: str = Field(..., min_length=1)
    deadline: datetime
    task_status: TaskStatus = TaskStatus.UNASSIGNED
    payment: float = Field(..., gt=0)
    type: TaskType


# --- Workflow Results ---


class AggregationResult(WireModel):
    """Task-centric view of received proposals.

    ``proposals`` has exactly one key per task in ``tasks``; tasks without
    proposals map to an empty list.
    """

    tasks: list[Task] = Field(default_factory=list)
    proposals: dict[int, list[EnrichedProposal]] = Field(default_factory=dict)

    def task_ids(self) -> list[int]:
        """Task ids in fetch order."""
        return [task.id for task in self.tasks]

    def get_task(self, task_id: int) -> Task | None:
        """Return the owned task with this id, if present."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def proposals_for(self, task_id: int) -> list[EnrichedProposal]:
        """Return the proposals received for a task (empty if unknown)."""
        return list(self.proposals.get(task_id, []))

    def find(self, task_id: int, proposal_id: int) -> EnrichedProposal | None:
        """Return the proposal if it was received for this task."""
        for proposal in self.proposals.get(task_id, []):
            if proposal.id == proposal_id:
                return proposal
        return None

    @property
    def total_proposals(self) -> int:
        return sum(len(items) for items in self.proposals.values())


class AssignmentResult(WireModel):
    """Successful assignment of a proposal to a task."""

    task_id: int
    proposal_id: int
    status_code: int = 204
