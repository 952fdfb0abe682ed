"""Storage-related data models for casblob.

Metadata snapshots, listing pages and statistics summaries. All models are
frozen: a snapshot handed out by a store is never mutated afterwards.
"""

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .errors import EmptyStatisticsError

# Well-known property names given special handling by backing stores
CONTENT_TYPE = "Content-Type"
CONTENT_ENCODING = "Content-Encoding"
CONTENT_DISPOSITION = "Content-Disposition"

WELL_KNOWN_PROPERTIES = (CONTENT_TYPE, CONTENT_ENCODING, CONTENT_DISPOSITION)


def get_property(properties: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive property lookup."""
    wanted = name.lower()
    for key, value in properties.items():
        if key.lower() == wanted:
            return value
    return None


class BlobMetadata(BaseModel):
    """Read-only snapshot returned by download/describe.

    ``properties`` is a read-only view over a private copy of the mapping it
    was built from, so neither the snapshot nor its source can be changed
    through the other.
    """
    model_config = ConfigDict(frozen=True)

    content_length: int = Field(ge=0)
    content_type: Optional[str] = None
    properties: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    @field_validator("properties", mode="after")
    @classmethod
    def freeze_properties(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Copy into a read-only view."""
        return MappingProxyType(dict(v))

    @field_serializer("properties")
    def dump_properties(self, v: Mapping[str, str]) -> Dict[str, str]:
        return dict(v)


class ObjectEntry(BaseModel):
    """One item of a remote listing page."""
    model_config = ConfigDict(frozen=True)

    key: str
    size: int = Field(default=0, ge=0)


class ObjectPage(BaseModel):
    """One batch of a paginated listing."""
    model_config = ConfigDict(frozen=True)

    entries: Tuple[ObjectEntry, ...] = ()
    next_token: Optional[str] = None  # None on the last page

    @property
    def is_truncated(self) -> bool:
        return self.next_token is not None


class StatisticsSummary(BaseModel):
    """Aggregate sizes over every blob in a store.

    Computed fresh on each request; ``min_size``/``max_size`` are 0 when
    ``count`` is 0.
    """
    model_config = ConfigDict(frozen=True)

    count: int = Field(default=0, ge=0)
    total_size: int = Field(default=0, ge=0)
    min_size: int = 0
    max_size: int = 0

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    @property
    def average(self) -> int:
        """Mean blob size in whole bytes.

        Raises:
            EmptyStatisticsError: If the summary covers no blobs
        """
        if self.count == 0:
            raise EmptyStatisticsError()
        return self.total_size // self.count
