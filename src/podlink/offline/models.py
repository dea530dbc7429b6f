"""
Models for queued offline actions.

``QueuedInput`` is the immutable domain record handed to callers;
``QueuedInputRecord`` is its SQLModel row.
"""

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, model_validator
from sqlmodel import Field, SQLModel

QueuedKind = Literal["input", "resize"]


class ResizePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    cols: int
    rows: int


QueuedPayload = Union[str, ResizePayload]


class QueuedInput(BaseModel):
    """An action captured while disconnected, waiting to be replayed."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: int
    session_name: str
    kind: QueuedKind
    payload: QueuedPayload
    seq: int = 0  # insertion order, assigned by the store

    @model_validator(mode="after")
    def _payload_matches_kind(self) -> "QueuedInput":
        if self.kind == "input" and not isinstance(self.payload, str):
            raise ValueError("input payload must be a string")
        if self.kind == "resize" and not isinstance(self.payload, ResizePayload):
            raise ValueError("resize payload must have cols and rows")
        return self


class QueuedInputRecord(SQLModel, table=True):
    __tablename__ = "input_queue"

    id: str = Field(primary_key=True)
    seq: int = Field(index=True)
    timestamp: int = Field(index=True)
    session_name: str = Field(index=True)
    kind: str
    payload: str  # JSON text
