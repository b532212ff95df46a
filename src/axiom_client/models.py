"""
Shared pydantic plumbing for API response models
"""

from typing import Any, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import DecodingError

ModelT = TypeVar("ModelT", bound=BaseModel)


class AxiomModel(BaseModel):
    """Base for response models: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def format_loc(loc: Sequence[Union[str, int]], prefix: str = "") -> str:
    """Render a pydantic error location as `a.b[0].c`."""
    path = prefix
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def parse_model(model: Type[ModelT], data: Any, prefix: str = "") -> ModelT:
    """
    Validate decoded JSON into a model.

    Raises:
        DecodingError: With the path of the first offending value
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        raise DecodingError(f"Invalid {model.__name__}: {first['msg']}",
                            path=format_loc(first["loc"], prefix) or None) from e
