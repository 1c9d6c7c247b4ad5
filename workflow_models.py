"""
Workflow data models.

Defines the JSON structure of recorded workflows and of replay results.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

import replay_config
from replay_errors import InvalidWorkflow


class Coordinates(NamedTuple):
    x: float
    y: float


class ClickStep(BaseModel):
    type: Literal["click"] = "click"
    selector: Optional[str] = None
    x: Optional[float] = Field(default=None, allow_inf_nan=False)
    y: Optional[float] = Field(default=None, allow_inf_nan=False)
    delay: int = Field(default=0, ge=0)  # ms since the previous action

    @model_validator(mode="after")
    def _check_locator(self) -> "ClickStep":
        if not self.selector and (self.x is None or self.y is None):
            raise ValueError("click step needs a selector or x/y coordinates")
        return self

    @property
    def locator(self) -> str | Coordinates:
        # A recorded selector is preferred over the raw click position
        if self.selector:
            return self.selector
        return Coordinates(self.x, self.y)


class TypeTextStep(BaseModel):
    type: Literal["type"] = "type"
    selector: Optional[str] = None
    value: Optional[str] = None
    delay: int = Field(default=0, ge=0)


Step = Annotated[Union[ClickStep, TypeTextStep], Field(discriminator="type")]


class Workflow(BaseModel):
    url: str = Field(default_factory=lambda: replay_config.DEFAULT_URL)
    speed: float = Field(default=1.0, gt=0, allow_inf_nan=False)
    steps: list[Step] = Field(min_length=1)

    @classmethod
    def from_payload(cls, data: Any) -> "Workflow":
        """
        Build a Workflow from a submitted JSON document.

        Args:
            data: Decoded request body

        Returns:
            Workflow instance

        Raises:
            InvalidWorkflow: If steps are missing or any field is invalid
        """
        if not isinstance(data, dict):
            raise InvalidWorkflow("steps array is required")

        steps = data.get("steps")
        if not isinstance(steps, list) or not steps:
            raise InvalidWorkflow("steps array is required")

        # null url/speed fall back to the defaults
        fields = {k: v for k, v in data.items() if not (k in ("url", "speed") and v is None)}

        try:
            return cls.model_validate(fields)
        except ValidationError as e:
            raise InvalidWorkflow(describe_validation_error(e)) from e


def describe_validation_error(error: ValidationError) -> str:
    """Flatten pydantic errors into a single readable line."""
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


StepStatus = Literal["executed", "skipped", "failed"]


class StepOutcome(BaseModel):
    index: int
    type: str
    status: StepStatus
    reason: Optional[str] = None


class RunResult(BaseModel):
    status: Literal["ok", "failed"]
    error: Optional[str] = None  # error kind, e.g. "NavigationError"
    reason: Optional[str] = None
    steps: list[StepOutcome] = Field(default_factory=list)
    log: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def count(self, status: StepStatus) -> int:
        return sum(1 for outcome in self.steps if outcome.status == status)
