import re
from typing import Optional, List

from pydantic import Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from app.thinking.core_types import (
    BRANCH_ID_MAX_LENGTH,
    CONTENT_MAX_LENGTH,
    MAIN_LINE,
    RELATED_TO_MAX_ITEMS,
    SEARCH_LIMIT_MAX,
    SequenceBundle,
    ThoughtType,
    VerificationResult,
    WireModel,
)


CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F-\x9F]")

DIRECTIVE_FIELDS = ("save_sequence", "load_sequence", "search_sequence", "export_sequence", "import_sequence")
REQUIRED_THOUGHT_FIELDS = ("thought", "thought_number", "total_thoughts", "next_thought_needed")


def sanitize_content(value: str) -> str:
    """Strip control characters, then surrounding whitespace."""
    return CONTROL_CHARS.sub("", value).strip()


# ============================================================================
# Directives
# ============================================================================

class SaveSequenceDirective(WireModel):
    title: str = Field(..., min_length=1, description="Title of the new sequence", examples=["Database migration plan"])
    description: Optional[str] = Field(None, description="Optional free-text description")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = sanitize_content(v)
        if not v:
            raise PydanticCustomError("empty_title", "title must be a non-empty string")
        return v


class LoadSequenceDirective(WireModel):
    id: str = Field(..., min_length=1, examples=["seq_4f2a9c1d0b7e3a55"])


class SearchSequenceDirective(WireModel):
    query: Optional[str] = Field(None, description="Search text; blank lists the most recent sequences")
    limit: int = Field(10, ge=1, le=SEARCH_LIMIT_MAX)
    content_search: bool = Field(False, description="Search thought content instead of titles and descriptions")


class ExportSequenceDirective(WireModel):
    id: str = Field(..., min_length=1)


class ImportSequenceDirective(WireModel):
    data: SequenceBundle


# ============================================================================
# Submission
# ============================================================================

class ThoughtSubmission(WireModel):
    """
    One already-parsed submission: a thought, or exactly one sequence directive.

    Structural and logical rules are enforced here. Rules that need the
    current store (duplicates, revision targets, branch points, hypothesis
    references) live in ``app.thinking.validation``.
    """
    thought: Optional[str] = Field(None, max_length=CONTENT_MAX_LENGTH, description="The reasoning step")
    thought_number: Optional[int] = Field(None, ge=1)
    total_thoughts: Optional[int] = Field(None, ge=1)
    next_thought_needed: Optional[bool] = None
    is_revision: Optional[bool] = None
    revises_thought: Optional[int] = Field(None, ge=1)
    branch_from_thought: Optional[int] = Field(None, ge=1)
    branch_id: Optional[str] = Field(None, min_length=1, max_length=BRANCH_ID_MAX_LENGTH)
    needs_more_thoughts: Optional[bool] = None
    thought_type: Optional[ThoughtType] = None
    verification_result: Optional[VerificationResult] = None
    related_to: Optional[List[int]] = Field(None, max_length=RELATED_TO_MAX_ITEMS)

    save_sequence: Optional[SaveSequenceDirective] = None
    load_sequence: Optional[LoadSequenceDirective] = None
    search_sequence: Optional[SearchSequenceDirective] = None
    export_sequence: Optional[ExportSequenceDirective] = None
    import_sequence: Optional[ImportSequenceDirective] = None

    @field_validator("thought")
    @classmethod
    def validate_thought(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = sanitize_content(v)
        if not v:
            raise PydanticCustomError(
                "empty_thought",
                "thought must be a non-empty string",
            )
        return v

    @field_validator("related_to")
    @classmethod
    def validate_related_to(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return v
        for number in v:
            if number < 1:
                raise PydanticCustomError(
                    "invalid_related_to",
                    "relatedTo entries must be positive integers",
                )
        return v

    @field_validator("branch_id")
    @classmethod
    def validate_branch_id(cls, v: Optional[str]) -> Optional[str]:
        if v == MAIN_LINE:
            raise PydanticCustomError(
                "reserved_branch_id",
                "branchId '{branch_id}' is reserved for the main line",
                {"branch_id": v},
            )
        return v

    @model_validator(mode="after")
    def validate_logical_rules(self) -> "ThoughtSubmission":
        directives = [name for name in DIRECTIVE_FIELDS if getattr(self, name) is not None]
        if len(directives) > 1:
            raise PydanticCustomError(
                "multiple_directives",
                "Only one sequence directive may be given per submission",
                {"field": to_camel(directives[1])},
            )

        if not directives:
            for name in REQUIRED_THOUGHT_FIELDS:
                if getattr(self, name) is None:
                    field = to_camel(name)
                    raise PydanticCustomError(
                        "missing_field",
                        "Invalid {field}: required when no sequence directive is given",
                        {"field": field},
                    )

        if self.is_revision and self.revises_thought is None:
            raise PydanticCustomError(
                "revision_missing_target",
                "revisesThought is required when isRevision is true",
                {"field": "revisesThought"},
            )
        if self.revises_thought is not None and not self.is_revision:
            raise PydanticCustomError(
                "revision_flag_missing",
                "revisesThought requires isRevision to be true",
                {"field": "isRevision"},
            )
        if (self.branch_from_thought is None) != (self.branch_id is None):
            field = "branchId" if self.branch_id is None else "branchFromThought"
            raise PydanticCustomError(
                "branch_fields_incomplete",
                "branchFromThought and branchId must be given together",
                {"field": field},
            )
        if self.verification_result is not None and self.thought_type != ThoughtType.VERIFICATION:
            raise PydanticCustomError(
                "verification_result_without_verification",
                "verificationResult is only allowed when thoughtType is 'verification'",
                {"field": "verificationResult"},
            )
        return self

    @property
    def directive(self) -> Optional[str]:
        """Name of the directive carried by this submission, if any."""
        for name in DIRECTIVE_FIELDS:
            if getattr(self, name) is not None:
                return name
        return None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "thought": "The slow query only appears after the nightly import.",
                    "thoughtNumber": 1,
                    "totalThoughts": 4,
                    "nextThoughtNeeded": True,
                    "thoughtType": "hypothesis",
                },
                {
                    "thought": "Import disabled for a night: query stays fast.",
                    "thoughtNumber": 2,
                    "totalThoughts": 4,
                    "nextThoughtNeeded": True,
                    "thoughtType": "verification",
                    "verificationResult": "confirmed",
                    "relatedTo": [1],
                },
                {
                    "saveSequence": {"title": "Slow query investigation"},
                },
            ]
        }
    }
