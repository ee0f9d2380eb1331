"""Schema gate applied to request bodies before they reach a handler."""

from typing import Any, Dict, Type

from fastapi import Body
from pydantic import BaseModel, ValidationError

from .errors import BadRequestError, describe_validation_errors


def validate_payload(schema: Type[BaseModel], payload: Any) -> Dict[str, Any]:
    """Check ``payload`` against ``schema`` and return the fields that were supplied.

    All violations are reported together in one :class:`BadRequestError`.
    """

    try:
        model = schema.model_validate(payload)
    except ValidationError as exc:
        errors = describe_validation_errors(exc.errors())
        message = ", ".join(f"{item['field']}: {item['message']}" for item in errors)
        raise BadRequestError(message, errors=errors) from exc
    return model.model_dump(exclude_unset=True)


class ValidationGate:
    """FastAPI dependency that validates the JSON body against ``schema``."""

    def __init__(self, schema: Type[BaseModel]) -> None:
        self.schema = schema

    async def __call__(self, payload: Any = Body(...)) -> Dict[str, Any]:
        return validate_payload(self.schema, payload)


__all__ = ["ValidationGate", "validate_payload"]
