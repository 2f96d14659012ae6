from __future__ import annotations

from dataclasses import dataclass, field


class ValidationError(ValueError):
    pass


class NotFoundError(ValueError):
    def __init__(self, entity: str, identifier: str | None = None):
        self.entity = entity
        self.identifier = identifier
        message = f'{entity} not found'
        if identifier:
            message = f'{message}: {identifier}'
        super().__init__(message)


class ExternalStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class ConsistencyWarning:
    """Non-fatal finding attached to a pass result for operator review."""

    code: str
    message: str
    ids: tuple[str, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        if not self.ids:
            return f'{self.code}: {self.message}'
        return f"{self.code}: {self.message} ({', '.join(self.ids)})"
