"""Search layer data types — ranked hits and listing pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchHit:
    """A single ranked result from a similarity search.

    Attributes:
        record: Row values keyed by column name; the vector column is
            unpacked to a list of floats.
        similarity: ``1 - distance / 2``, higher is more similar.
        distance: Cosine distance reported by the store, in ``[0, 2]``.
    """

    record: dict[str, Any]
    similarity: float
    distance: float


@dataclass(frozen=True, slots=True)
class Page:
    """One slice of a filtered, sorted listing.

    Attributes:
        items: Rows in this slice.
        total: Number of rows matching the filter before slicing.
        offset: Index of the first item within the full result.
        limit: Requested slice size.
    """

    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 20

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total
