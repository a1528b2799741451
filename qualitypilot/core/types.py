"""
Core data models and types for the QualityPilot execution engine.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def epoch_millis() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class RunStatus(str, Enum):
    """Status of a run."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class StepStatus(str, Enum):
    """Status of a single step."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ActionType(str, Enum):
    """Actions the engine knows how to execute."""

    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    WAIT = "wait"
    ASSERT = "assert"
    SCREENSHOT = "screenshot"
    SCROLL = "scroll"
    HOVER = "hover"
    KEYBOARD = "keyboard"


class AssertionType(str, Enum):
    """Closed set of assertion kinds."""

    TEXT = "text"
    URL = "url"
    TITLE = "title"
    ELEMENT = "element"
    COUNT = "count"


class BrowserKind(str, Enum):
    """Browser engines a run can request."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class EventType(str, Enum):
    """Lifecycle events emitted for a run."""

    TEST_STARTED = "test_started"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    SCREENSHOT = "screenshot"
    LOG = "log"
    TEST_COMPLETED = "test_completed"
    TEST_FAILED = "test_failed"
    ERROR = "error"


class Viewport(BaseModel):
    """Browser viewport dimensions."""

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class RunOptions(BaseModel):
    """Per-run browser options."""

    browser: BrowserKind = BrowserKind.CHROMIUM
    headless: bool = True
    timeout: Optional[int] = Field(None, gt=0, description="Default action timeout in ms")
    viewport: Optional[Viewport] = None


class RunRequest(BaseModel):
    """Input accepted by the step runner."""

    prompt: str = Field(..., min_length=1)
    url: str
    credentials: Dict[str, str] = Field(default_factory=dict)
    options: RunOptions = Field(default_factory=RunOptions)

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://", "file://")):
            raise ValueError(f"Invalid URL: {value!r}")
        return value


class AssertionSpec(BaseModel):
    """Assertion requested by a step definition."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: AssertionType
    expected: Union[int, str]
    selector: Optional[str] = Field(
        None, description="Locator counted by 'count' assertions"
    )


class AssertionResult(BaseModel):
    """Observed outcome of one assertion evaluation."""

    type: AssertionType
    expected: Union[int, str]
    actual: Optional[Union[int, str]] = None
    passed: bool


class StepDefinition(BaseModel):
    """One abstract action produced by the step generator."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    action: str
    target: Optional[str] = None
    value: Optional[str] = None
    assertion: Optional[AssertionSpec] = None
    description: str = ""
    context: Optional[str] = Field(
        None, description="Visible name of the item/card the target belongs to"
    )

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, value: Any) -> str:
        return str(value).strip().lower()

    @field_validator("target", "value", "context", mode="before")
    @classmethod
    def coerce_scalar(cls, value: Any) -> Optional[str]:
        # Generators regularly emit numbers for wait durations
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class StepResult(BaseModel):
    """Execution record for one step definition."""

    id: str
    index: int
    action: str
    target: Optional[str] = None
    value: Optional[str] = None
    description: str = ""
    assertion: Optional[AssertionResult] = None
    timestamp: int = Field(default_factory=epoch_millis)
    status: StepStatus = StepStatus.PENDING
    error: Optional[str] = None
    screenshot: Optional[str] = Field(None, description="Screenshot reference")

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy used in event payloads."""
        return self.model_dump(mode="json")


class Run(BaseModel):
    """One end-to-end execution of a step sequence."""

    id: str
    prompt: str
    url: str
    options: RunOptions = Field(default_factory=RunOptions)
    status: RunStatus = RunStatus.QUEUED
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    steps: List[StepResult] = Field(default_factory=list)
    screenshots: List[str] = Field(default_factory=list)
    video: Optional[str] = None

    @classmethod
    def from_request(cls, run_id: str, request: RunRequest) -> "Run":
        return cls(
            id=run_id,
            prompt=request.prompt,
            url=request.url,
            options=request.options,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def mark_running(self) -> None:
        if self.status is not RunStatus.QUEUED:
            raise RuntimeError(f"Run {self.id} cannot start from status {self.status.value}")
        self.status = RunStatus.RUNNING
        self.start_time = datetime.now(timezone.utc)

    def finish(self, status: RunStatus, error: Optional[str] = None) -> None:
        """Move the run into a terminal state; allowed exactly once."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        if self.is_terminal:
            raise RuntimeError(
                f"Run {self.id} already finished with status {self.status.value}"
            )
        self.status = status
        self.error = error
        self.end_time = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class RunEvent(BaseModel):
    """A lifecycle event for one run."""

    type: EventType
    run_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_wire(self) -> Dict[str, Any]:
        """Shape delivered to observers."""
        return {"type": self.type.value, "runId": self.run_id, "data": self.data}


class InventoryElement(BaseModel):
    """A visible button or link."""

    text: str
    tag: str
    visible: bool = True
    href: Optional[str] = None


class InventoryInput(BaseModel):
    """A visible form control."""

    tag: str = "input"
    type: Optional[str] = None
    placeholder: Optional[str] = None
    label: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    visible: bool = True

    @property
    def display_name(self) -> Optional[str]:
        return self.label or self.placeholder or self.name or self.id


class PageInventory(BaseModel):
    """Snapshot of visible interactive elements on a page."""

    buttons: List[InventoryElement] = Field(default_factory=list)
    links: List[InventoryElement] = Field(default_factory=list)
    inputs: List[InventoryInput] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.buttons or self.links or self.inputs)

    def visible_candidates(self, limit: Optional[int] = None) -> List[str]:
        """Human readable candidate list used in resolution failures."""
        candidates = [f'button "{b.text}"' for b in self.buttons]
        candidates += [f'link "{link.text}"' for link in self.links]
        for field in self.inputs:
            name = field.display_name
            if name:
                candidates.append(f'{field.type or field.tag} "{name}"')
        if limit is not None:
            return candidates[:limit]
        return candidates

    def describe(self, per_category: int = 30) -> str:
        """Compact listing fed to the step generator."""
        lines = []
        if self.buttons:
            lines.append(
                "Buttons: " + ", ".join(b.text for b in self.buttons[:per_category])
            )
        if self.links:
            lines.append(
                "Links: " + ", ".join(link.text for link in self.links[:per_category])
            )
        input_names = [f.display_name for f in self.inputs if f.display_name]
        if input_names:
            lines.append("Input fields: " + ", ".join(input_names[:per_category]))
        return "\n".join(lines)
