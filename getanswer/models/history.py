"""
Query History Models

A HistoryEntry is written once, when a query completes successfully,
and never changed afterwards.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from getanswer.models.ids import new_monotonic_id


class HistoryEntry(BaseModel):
    """Immutable record of one completed image-to-answer query."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=new_monotonic_id,
        min_length=1,
        description="Unique, monotonic-time-derived identifier"
    )
    image_reference: Optional[str] = Field(
        default=None,
        description="URI or path of the source image, if there was one"
    )
    extracted_text: str = Field(
        ...,
        description="Question text read from the image (possibly user-edited)"
    )
    answer_text: str = Field(
        ...,
        min_length=1,
        description="Answer returned by the AI"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the query completed (UTC)"
    )

    def to_storage_dict(self) -> dict:
        """JSON-compatible dict for the history log."""
        return self.model_dump(mode="json")

    @property
    def preview(self) -> str:
        """First line of the question, shortened for list views."""
        first_line = self.extracted_text.strip().splitlines()[0] if self.extracted_text.strip() else ""
        return first_line if len(first_line) <= 80 else first_line[:77] + "..."
