from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from .models import TaskEntity


def _normalize_text(value: str) -> str:
    """
    Strip surrounding whitespace and reject empty task text.
    """
    s = value.strip()
    if not s:
        raise ValueError("text must not be empty")
    return s


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new Task.
    """

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "text": "Buy milk",
                "completed": False,
            }
        },
    )

    text: StrictStr = Field(..., description="Short text describing the task")
    completed: StrictBool = Field(default=False, description="Completion status flag")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """
        Strip whitespace and require at least one character.
        """
        return _normalize_text(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for partially updating an existing Task.
    Fields are optional but may not be sent as null; only fields present in
    the request body are applied.
    """

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "completed": True,
            }
        },
    )

    text: Optional[StrictStr] = Field(default=None, description="Short text describing the task")
    completed: Optional[StrictBool] = Field(default=None, description="Completion status flag")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: Optional[str]) -> str:
        """
        If text is provided, it must be a non-null string; strip it and require
        at least one character.
        """
        # Validators only run for provided values, so None here is an explicit null
        if v is None:
            raise ValueError("text must be a string")
        return _normalize_text(v)

    @field_validator("completed")
    @classmethod
    def validate_completed(cls, v: Optional[bool]) -> bool:
        """
        If completed is provided, it must not be null.
        """
        if v is None:
            raise ValueError("completed must be a boolean")
        return v


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a Task.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "0b7c5a1e-7f0e-4a59-9a53-3c2f0d8e4b11",
                "text": "Buy milk",
                "completed": False,
                "createdAt": "2025-01-25T10:15:30.123456+00:00",
            }
        }
    )

    id: str = Field(..., description="Unique identifier of the task")
    text: str = Field(..., description="Short text describing the task")
    completed: bool = Field(..., description="Completion status flag")
    created_at: datetime = Field(
        ..., alias="createdAt", description="Creation timestamp (ISO8601)"
    )


# PUBLIC_INTERFACE
class ValidationIssue(BaseModel):
    """
    A single field-level validation problem.
    """

    path: List[Union[str, int]] = Field(..., description="Location of the offending field in the body")
    message: str = Field(..., description="Human readable description of the problem")
    code: str = Field(..., description="Machine readable error type")


# PUBLIC_INTERFACE
class ErrorOut(BaseModel):
    """
    Error body returned for every non-2xx response.
    """

    message: str = Field(..., description="Generic error message")
    errors: Optional[List[ValidationIssue]] = Field(
        default=None, description="Itemized validation issues (400 responses only)"
    )


def task_out(entity: TaskEntity) -> TaskOut:
    """Build the response model from a stored TaskEntity."""
    return TaskOut(**entity)
