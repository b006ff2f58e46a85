"""Evidence snapshot models built fresh for each resolution attempt."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EvidenceRecord(BaseModel):
    """One evidence source, tagged by ``type``; payload fields are free-form."""
    model_config = ConfigDict(extra="allow")

    type: str


class ExternalDataSnapshot(BaseModel):
    """Evidence gathered for one handling pass. Never persisted on its own."""
    timestamp: int  # unix milliseconds
    sources: list[EvidenceRecord] = Field(default_factory=list)

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(indent=indent)
