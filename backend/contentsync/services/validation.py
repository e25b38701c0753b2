"""Content-type validation run before a create/update is applied.

Validators are registered per content type. Every payload must be a
non-empty mapping; type-specific rules then check the fields that are
present. Update payloads are partial, so missing fields only produce
warnings.
"""

import re
from collections.abc import Callable
from datetime import datetime
from typing import Any

from contentsync.core.logging import get_logger
from contentsync.schemas.sync import ValidationResult

logger = get_logger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MAX_TITLE_LENGTH = 500

# A validator appends to the errors and warnings lists in place
Validator = Callable[[dict[str, Any], list[str], list[str]], None]

VALIDATORS: dict[str, Validator] = {}


def register_validator(content_type: str) -> Callable[[Validator], Validator]:
    """Decorator to register a validator for a content type.

    Usage:
        @register_validator("faq")
        def validate_faq(data: dict, errors: list[str], warnings: list[str]) -> None:
            if "question" not in data:
                errors.append("question is required")
    """

    def decorator(func: Validator) -> Validator:
        VALIDATORS[content_type] = func
        return func

    return decorator


def validate_content_for_sync(
    content_type: str,
    content_data: Any,
) -> ValidationResult:
    """Check a payload against the rules for its content type.

    Args:
        content_type: Category of content
        content_data: Payload to validate

    Returns:
        ValidationResult with is_valid, errors and warnings
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(content_data, dict) or not content_data:
        errors.append("Content data must be a non-empty object")
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    validator = VALIDATORS.get(content_type)
    if validator is None:
        warnings.append(f"No validation rules registered for content type '{content_type}'")
    else:
        validator(content_data, errors, warnings)

    if errors:
        logger.info(
            "content_validation_failed",
            content_type=content_type,
            errors=errors,
        )

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def _check_title(data: dict[str, Any], errors: list[str], warnings: list[str]) -> None:
    if "title" not in data:
        warnings.append("title is not set")
        return
    title = data["title"]
    if not isinstance(title, str) or not title.strip():
        errors.append("title must be a non-empty string")
    elif len(title) > MAX_TITLE_LENGTH:
        errors.append(f"title must be at most {MAX_TITLE_LENGTH} characters")


def _check_optional_string(data: dict[str, Any], field: str, errors: list[str]) -> None:
    if field in data and data[field] is not None and not isinstance(data[field], str):
        errors.append(f"{field} must be a string")


def _parse_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@register_validator("content")
def validate_content(data: dict[str, Any], errors: list[str], warnings: list[str]) -> None:
    """Generic site content blocks."""
    _check_title(data, errors, warnings)
    _check_optional_string(data, "body", errors)
    _check_optional_string(data, "content", errors)


@register_validator("page")
def validate_page(data: dict[str, Any], errors: list[str], warnings: list[str]) -> None:
    """Pages need a URL-safe slug."""
    _check_title(data, errors, warnings)
    if "slug" in data:
        slug = data["slug"]
        if not isinstance(slug, str) or not SLUG_PATTERN.match(slug):
            errors.append("slug must contain only lowercase letters, digits and hyphens")
    if "sections" in data and not isinstance(data["sections"], list):
        errors.append("sections must be a list")


@register_validator("event")
def validate_event(data: dict[str, Any], errors: list[str], warnings: list[str]) -> None:
    """Events carry ISO 8601 start and end dates."""
    _check_title(data, errors, warnings)

    start = end = None
    for field in ("start_date", "end_date"):
        if field in data:
            parsed = _parse_datetime(data[field])
            if parsed is None:
                errors.append(f"{field} must be an ISO 8601 date")
            elif field == "start_date":
                start = parsed
            else:
                end = parsed

    if start and end:
        # Mixed naive/aware values cannot be compared
        if (start.tzinfo is None) != (end.tzinfo is None):
            warnings.append("start_date and end_date use different timezone formats")
        elif end < start:
            errors.append("end_date must not be before start_date")

    _check_optional_string(data, "location", errors)


@register_validator("story")
def validate_story(data: dict[str, Any], errors: list[str], warnings: list[str]) -> None:
    """Community stories."""
    _check_title(data, errors, warnings)
    _check_optional_string(data, "content", errors)
    _check_optional_string(data, "author", errors)
    if "author" not in data:
        warnings.append("author is not set")
