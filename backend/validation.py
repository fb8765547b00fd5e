"""
Payload validation shared by every handler.

`validate_payload(Model, body)` never raises: it returns a ValidationResult
holding either the parsed model or a field -> message map. Handlers call
`.unwrap()` to turn a failed result into a 400 PayloadValidationError.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from backend.exceptions import PayloadValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Location prefixes FastAPI adds to request validation errors
_LOCATION_ROOTS = {"body", "query", "path", "header"}


@dataclass
class ValidationResult(Generic[ModelT]):
    value: Optional[ModelT] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors

    def unwrap(self) -> ModelT:
        if not self.ok:
            raise PayloadValidationError(list(self.errors), self.errors)
        return self.value


def errors_by_field(errors: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """Collapse pydantic error dicts to the first message per field"""
    out: Dict[str, str] = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in _LOCATION_ROOTS]
        name = ".".join(loc) or "body"
        message = err.get("msg", "Invalid value")
        # "Value error, <message>" -> "<message>"
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        out.setdefault(name, message)
    return out


def validate_payload(model: Type[ModelT], payload: Any) -> ValidationResult[ModelT]:
    if not isinstance(payload, dict):
        return ValidationResult(errors={"body": "Request body must be a JSON object"})
    try:
        return ValidationResult(value=model.model_validate(payload))
    except ValidationError as exc:
        return ValidationResult(errors=errors_by_field(exc.errors()))


def update_changes(update: BaseModel) -> Dict[str, Any]:
    """Fields the caller sent. An explicit null is kept only for fields listed in the model's NULLABLE."""
    nullable = getattr(type(update), "NULLABLE", frozenset())
    return {
        name: value
        for name, value in update.model_dump(exclude_unset=True).items()
        if value is not None or name in nullable
    }
