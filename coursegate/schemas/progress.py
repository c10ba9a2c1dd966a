from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProgressMark(BaseModel):
    lesson_slug: str = Field(..., min_length=1, alias="lessonSlug")
    course_slug: Optional[str] = Field(default=None, alias="courseSlug")
    module_slug: Optional[str] = Field(default=None, alias="moduleSlug")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {"lessonSlug": "intro-01", "courseSlug": "course-101", "moduleSlug": "module-1"}
        },
    )


class ProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_slug: str
    course_slug: Optional[str] = None
    module_slug: Optional[str] = None
    completed: bool
    completed_at: Optional[str] = None
    last_viewed_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProgressStatus(BaseModel):
    lesson_slug: str
    completed: bool
