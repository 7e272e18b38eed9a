import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def generate_id() -> str:
    return str(uuid.uuid4())


class ParsedTask(BaseModel):
    """Task fields extracted by the language model.

    ``due_date`` stays a natural-language phrase; it is resolved separately in
    the caller's timezone.
    """

    # Model output is untrusted: no type coercion
    model_config = ConfigDict(strict=True)

    title: str = Field(min_length=1)
    assignee_names: list[str] = Field(default_factory=list)
    due_date: str | None = None
    priority: TaskPriority | None = None
    subtasks: list[str] = Field(default_factory=list)
    description: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority_from_json(cls, value: object) -> object:
        # JSON carries enum values as plain strings
        if isinstance(value, str):
            return TaskPriority(value)
        return value

    def to_wire(self) -> dict:
        """Serialize the fields that are set, as returned to API callers."""
        data: dict = {"title": self.title}
        if self.assignee_names:
            data["assignee_names"] = list(self.assignee_names)
        if self.due_date is not None:
            data["due_date"] = self.due_date
        if self.priority is not None:
            data["priority"] = self.priority.value
        if self.subtasks:
            data["subtasks"] = list(self.subtasks)
        if self.description is not None:
            data["description"] = self.description
        return data


class GeneratedSubtask(BaseModel):
    model_config = ConfigDict(strict=True)

    title: str = Field(min_length=1)
    estimated_hours: float | None = None

    @field_validator("estimated_hours", mode="before")
    @classmethod
    def _hours_from_json(cls, value: object) -> object:
        # JSON has a single number type; accept integers but never strings
        if isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value


class SubtaskItem(BaseModel):
    id: str = Field(default_factory=generate_id)
    title: str
    completed: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class TaskDraft(BaseModel):
    """A parsed task ready to hand to the storage layer."""

    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: str | None = None  # YYYY-MM-DD in the user's timezone
    due_date_confidence: str | None = None
    subtasks: list[SubtaskItem] = Field(default_factory=list)
    assignee_names: list[str] = Field(default_factory=list)
