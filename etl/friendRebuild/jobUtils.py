"""
Helpers shared by the rebuild jobs
"""
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterator, List, Sequence


@dataclass
class JobSummary:
    job: str
    processed: int = 0
    success: int = 0
    skipped: int = 0
    errors: int = 0
    failed_member_ids: List[int] = field(default_factory=list)

    def record_failure(self, member_id: int) -> None:
        self.processed += 1
        self.errors += 1
        self.failed_member_ids.append(member_id)

    def record_success(self, written: bool = True) -> None:
        self.processed += 1
        if written:
            self.success += 1
        else:
            self.skipped += 1

    def to_dict(self) -> Dict:
        return asdict(self)


def chunked(items: Sequence, size: int) -> Iterator[Sequence]:
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def snapshot_version() -> int:
    """Version stamped on every snapshot written by one run (epoch millis)"""
    return int(time.time() * 1000)
