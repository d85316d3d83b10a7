from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(BaseModel):
    message: str


def normalize_optional_text(value: str | None, max_length: int, field_label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{field_label} must be {max_length} characters or fewer.')

    return normalized


def normalize_required_text(value: str, min_length: int, max_length: int, field_label: str) -> str:
    normalized = value.strip()
    if len(normalized) < min_length:
        raise ValueError(f'{field_label} must be at least {min_length} characters.')
    if len(normalized) > max_length:
        raise ValueError(f'{field_label} must be {max_length} characters or fewer.')
    return normalized
