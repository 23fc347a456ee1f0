"""Client-side validation of the user details a bot asks for before messaging."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, create_model

from bot_console.chat.errors import DetailsValidationError
from bot_console.storage.models import PromptField

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?[0-9][0-9\s\-().]{4,19}$"


def _field_definition(prompt: PromptField) -> tuple[Any, Any]:
    constraints: dict[str, Any] = {"alias": prompt.name}
    annotation: Any = str
    match prompt.type:
        case "email":
            constraints["pattern"] = EMAIL_PATTERN
        case "phone" | "tel":
            constraints["pattern"] = PHONE_PATTERN
        case "number":
            annotation = float
        case _:
            constraints["min_length"] = 1

    if prompt.required:
        return annotation, Field(..., **constraints)
    return Optional[annotation], Field(default=None, **constraints)


def build_details_model(fields: list[PromptField]) -> type[BaseModel]:
    definitions = {
        f"field_{i}": _field_definition(prompt)
        for i, prompt in enumerate(fields)
        if prompt.name
    }
    return create_model("UserDetails", **definitions)


def validate_user_details(
    fields: list[PromptField], details: dict[str, Any]
) -> dict[str, Any]:
    """Check required/type constraints and return the stripped submitted values.

    Blank optional values are dropped rather than rejected.
    """
    cleaned: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        if value is not None:
            cleaned[key] = value

    model = build_details_model(fields)
    try:
        model.model_validate(cleaned)
    except ValidationError as e:
        missing = [
            str(err["loc"][0]) for err in e.errors() if err["type"] == "missing"
        ]
        message = (
            f"Missing required details: {', '.join(missing)}"
            if missing
            else "Some details are not valid"
        )
        raise DetailsValidationError(message, errors=e.errors()) from e
    return cleaned
