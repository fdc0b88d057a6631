"""
Request models for the exam API.

Bodies use camelCase on the wire; the models accept either spelling.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from jlpt_backend.assessments.base.models import ContentStatus, TestKind

TranslatableField = Literal["name", "description"]


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class TranslationInput(_RequestModel):
    """One localized value of a Test field."""
    field: TranslatableField = Field(..., description="Which Test field the value belongs to")
    language_code: str = Field(..., alias="languageCode", min_length=2, max_length=10)
    value: str = Field(..., min_length=1, max_length=1000)


def _unique_translations(translations: Optional[List[TranslationInput]]) -> Optional[List[TranslationInput]]:
    if translations:
        seen = set()
        for item in translations:
            pair = (item.field, item.language_code)
            if pair in seen:
                raise ValueError(f"duplicate translation for {item.field} in {item.language_code}")
            seen.add(pair)
    return translations


class CreateTestRequest(_RequestModel):
    kind: TestKind
    status: ContentStatus = ContentStatus.DRAFT
    limit: Optional[int] = Field(None, ge=0, description="Quota template; null or 0 is unlimited")
    translations: List[TranslationInput] = Field(..., min_length=1)

    @field_validator("translations")
    @classmethod
    def check_translations(cls, v):
        return _unique_translations(v)

    @model_validator(mode="after")
    def require_name(self):
        if not any(item.field == "name" for item in self.translations):
            raise ValueError("at least one name translation is required")
        return self


class UpdateTestRequest(_RequestModel):
    """Partial update; only fields present in the body are applied."""
    kind: Optional[TestKind] = None
    status: Optional[ContentStatus] = None
    limit: Optional[int] = Field(None, ge=0)
    translations: Optional[List[TranslationInput]] = None

    @field_validator("translations")
    @classmethod
    def check_translations(cls, v):
        return _unique_translations(v)

    @field_validator("kind", "status")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class QuestionSetIdsRequest(_RequestModel):
    test_set_ids: List[int] = Field(..., alias="testSetIds", min_length=1)
