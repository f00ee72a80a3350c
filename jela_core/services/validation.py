"""
Validation sink: keyed collection of validation messages.

The key is a field name, or "" for errors that concern the whole entity.
A service records into its sink; the request's ValidationHost merges the
service's sink into its own and rebinds the service to it.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from jela_shared.config.constants import ENTITY_LEVEL_KEY

# Location prefixes FastAPI adds to request validation errors
_LOCATION_PREFIXES = frozenset({"body", "query", "path", "header", "cookie"})


class ValidationSink:
    """
    Usage:
        sink = ValidationSink()
        sink.add_error("title", "This field is required.")
        sink.is_valid          # False
        sink.to_dict()         # {"title": ["This field is required."]}
    """

    def __init__(self, errors: Mapping[str, Iterable[str]] | None = None):
        self._errors: dict[str, list[str]] = {}
        if errors:
            for key, messages in errors.items():
                for message in messages:
                    self.add_error(key, message)

    def add_error(self, key: str | None, message: str) -> None:
        self._errors.setdefault(key or ENTITY_LEVEL_KEY, []).append(message)

    @property
    def is_valid(self) -> bool:
        return not any(self._errors.values())

    def merge(self, other: "ValidationSink") -> "ValidationSink":
        """
        Add every entry of `other` to this sink.

        Key order and message order are kept. A message already recorded under
        the same key is not added twice, so merging the same sink again is a
        no-op.
        """
        if other is self:
            return self
        for key, messages in other._errors.items():
            target = self._errors.setdefault(key, [])
            for message in messages:
                if message not in target:
                    target.append(message)
        return self

    def add_pydantic_errors(self, exc: Any) -> None:
        """
        Record the errors of a pydantic ValidationError (or FastAPI's
        RequestValidationError), keyed by the dotted error location.
        """
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ())]
            if loc and loc[0] in _LOCATION_PREFIXES:
                loc = loc[1:]
            self.add_error(".".join(loc), error.get("msg", "Invalid value"))

    @property
    def errors(self) -> dict[str, list[str]]:
        """Copy of the recorded errors."""
        return self.to_dict()

    def get(self, key: str) -> list[str]:
        return list(self._errors.get(key, ()))

    def keys(self) -> list[str]:
        return [key for key, messages in self._errors.items() if messages]

    def to_dict(self) -> dict[str, list[str]]:
        return {key: list(messages) for key, messages in self._errors.items() if messages}

    def clear(self) -> None:
        self._errors.clear()

    def __contains__(self, key: object) -> bool:
        return bool(self._errors.get(key))  # type: ignore[arg-type]

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._errors.values())

    def __repr__(self) -> str:
        return f"<ValidationSink({self.to_dict()!r})>"
