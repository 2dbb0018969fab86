"""
Legal Directory Extractor - Pydantic Data Schemas

Canonical lawyer profile record and the run-summary accumulator shared by
every extraction strategy (API payloads, embedded JSON, JSON-LD, HTML cards)
and by profile enrichment.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


UNKNOWN_NAME = "Unknown"


class ExtractionStrategy(str, Enum):
    """Source kind a record was extracted from."""
    API = "api"
    EMBEDDED_JSON = "embedded_json"
    JSON_LD = "json_ld"
    HTML = "html"


STRATEGY_COUNTERS = {
    ExtractionStrategy.API: "api_extractions",
    ExtractionStrategy.EMBEDDED_JSON: "embedded_json_extractions",
    ExtractionStrategy.JSON_LD: "json_ld_extractions",
    ExtractionStrategy.HTML: "html_extractions",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LawyerRecord(BaseModel):
    """
    Canonical lawyer profile record.

    Attribute names are snake_case; output uses the camelCase aliases
    (``reviewCount``, ``practiceAreas``, ``profileUrl`` ...). Records are
    frozen: enrichment produces a new instance via ``model_copy``.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(
        default=UNKNOWN_NAME,
        description="Lawyer's display name; 'Unknown' when the source has none"
    )

    rating: Optional[float] = Field(
        default=None,
        description="Rating parsed from text, number or aggregateRating"
    )

    review_count: int = Field(
        default=0, ge=0, alias="reviewCount",
        description="Number of client reviews"
    )

    practice_areas: List[str] = Field(default_factory=list, alias="practiceAreas")
    location: str = ""
    phone: str = ""
    email: str = ""

    website: str = Field(
        default="",
        description="Absolute external website URL; links back to the source site are dropped"
    )

    years_licensed: int = Field(default=0, ge=0, alias="yearsLicensed")
    bar_admissions: List[str] = Field(default_factory=list, alias="barAdmissions")
    languages: List[str] = Field(default_factory=list)
    education: List[str] = Field(default_factory=list)
    awards: List[str] = Field(default_factory=list)

    profile_url: str = Field(
        default="", alias="profileUrl",
        description="Absolute profile URL; identity key for deduplication"
    )

    bio: str = ""
    reviews: List[Any] = Field(default_factory=list)
    image: str = ""
    scraped_at: datetime = Field(default_factory=_utcnow, alias="scrapedAt")

    @field_validator('name', mode='before')
    @classmethod
    def default_unknown_name(cls, v):
        """Empty names fall back to the 'Unknown' sentinel."""
        if v is None or not str(v).strip():
            return UNKNOWN_NAME
        return str(v).strip()

    @field_validator('practice_areas', 'bar_admissions', 'languages', 'education', 'awards', mode='before')
    @classmethod
    def drop_empty_items(cls, v):
        if not v:
            return []
        return [str(item) for item in v if item]

    @field_validator('review_count', 'years_licensed', mode='before')
    @classmethod
    def coerce_count(cls, v):
        if v is None:
            return 0
        try:
            return max(0, int(v))
        except (TypeError, ValueError):
            return 0

    def to_output(self) -> dict:
        """Serialize to the camelCase output shape (JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)


class RunStats(BaseModel):
    """
    Run-summary counters.

    Passed explicitly into every extraction call that needs to count
    something; there is no module-level stats object.
    """
    total_records: int = Field(default=0, alias="totalLawyersScraped")
    pages_processed: int = Field(default=0, alias="pagesProcessed")
    api_extractions: int = Field(default=0, alias="apiExtractions")
    embedded_json_extractions: int = Field(default=0, alias="embeddedJsonExtractions")
    json_ld_extractions: int = Field(default=0, alias="jsonLdExtractions")
    html_extractions: int = Field(default=0, alias="htmlExtractions")
    profile_enrichments: int = Field(default=0, alias="profileEnrichments")
    blocked_requests: int = Field(default=0, alias="blockedRequests")
    zero_extraction_pages: int = Field(default=0, alias="zeroExtractionPages")
    started_at: datetime = Field(default_factory=_utcnow, alias="timestamp")
    finished_at: Optional[datetime] = Field(default=None, alias="finishedAt")

    model_config = ConfigDict(populate_by_name=True)

    def record_strategy(self, strategy: ExtractionStrategy, count: int) -> None:
        """Add ``count`` extracted records to the counter of ``strategy``."""
        field = STRATEGY_COUNTERS[ExtractionStrategy(strategy)]
        setattr(self, field, getattr(self, field) + int(count))

    def merge(self, other: "RunStats") -> "RunStats":
        """Add the counters of ``other`` into this accumulator."""
        for name in (
            "total_records", "pages_processed", "api_extractions",
            "embedded_json_extractions", "json_ld_extractions", "html_extractions",
            "profile_enrichments", "blocked_requests", "zero_extraction_pages",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        return self

    def finish(self) -> None:
        self.finished_at = _utcnow()

    def to_output(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
