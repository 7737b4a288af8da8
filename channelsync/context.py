import math
from dataclasses import dataclass, field
from typing import List, Set


@dataclass
class RunContext:
    """
    Progress and accumulated results of one sync run.

    Owned by the caller of a single run and passed explicitly to each stage.
    ``updated_ids`` is filled as names are rewritten; ``retire_ids`` is only
    acted upon once every page has been processed.
    """

    total_records: int
    page_size: int
    total_pages: int = 0
    page_index: int = 0
    records_seen: int = 0
    updated_ids: Set[str] = field(default_factory=set)
    retire_ids: Set[str] = field(default_factory=set)
    failed_ids: Set[str] = field(default_factory=set)
    message: str = ""

    @classmethod
    def start(cls, total_records: int, page_size: int) -> "RunContext":
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        return cls(
            total_records=total_records,
            page_size=page_size,
            total_pages=math.ceil(total_records / page_size),
        )

    @property
    def offset(self) -> int:
        return self.page_index * self.page_size

    @property
    def finished(self) -> float:
        """Fraction of records seen, capped at 1.0."""
        if self.total_records <= 0:
            return 1.0
        return min(1.0, self.records_seen / self.total_records)

    @property
    def exhausted(self) -> bool:
        return self.page_index >= self.total_pages

    def advance_page(self) -> str:
        self.page_index += 1
        self.message = f"Processed {self.records_seen} of {self.total_records}"
        return self.message

    def clear_results(self) -> None:
        self.updated_ids.clear()
        self.retire_ids.clear()
        self.failed_ids.clear()


def sorted_ids(ids: Set[str]) -> List[str]:
    return sorted(ids, key=str)
