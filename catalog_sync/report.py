"""Per-run outcome tracking, summary printing and the JSON run artifact."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from catalog_sync.config import DATA_DIR
from catalog_sync.logging_config import get_logger

__all__ = [
    "UPDATED",
    "UNCHANGED",
    "NOT_FOUND",
    "SKIPPED",
    "DOWNLOADED",
    "ERROR",
    "ItemOutcome",
    "RunReport",
]

logger = get_logger("report")

UPDATED = "updated"
UNCHANGED = "unchanged"
NOT_FOUND = "not_found"
SKIPPED = "skipped"
DOWNLOADED = "downloaded"
ERROR = "error"

# Statuses that mean the remote item was located
_FOUND_STATUSES = {UPDATED, UNCHANGED, DOWNLOADED}


@dataclass
class ItemOutcome:
    status: str
    sku: str = ""
    product_id: Optional[int] = None
    name: str = ""
    url: str = ""
    detail: str = ""
    error: str = ""


@dataclass
class RunReport:
    """Counters and per-item outcomes of one pipeline run."""

    name: str
    started_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))
    finished_at: Optional[str] = None
    processed: int = 0
    found: int = 0
    not_found: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    outcomes: List[ItemOutcome] = field(default_factory=list)

    def record(self, outcome: ItemOutcome) -> ItemOutcome:
        self.processed += 1
        if outcome.status in _FOUND_STATUSES:
            self.found += 1
        if outcome.status in (UPDATED, DOWNLOADED):
            self.updated += 1
        elif outcome.status == NOT_FOUND:
            self.not_found += 1
        elif outcome.status == SKIPPED:
            self.skipped += 1
        elif outcome.status == ERROR:
            self.errors += 1
        self.outcomes.append(outcome)
        return outcome

    def add(self, status: str, **kwargs: Any) -> ItemOutcome:
        return self.record(ItemOutcome(status=status, **kwargs))

    def finish(self) -> "RunReport":
        self.finished_at = datetime.now().isoformat(timespec="seconds")
        return self

    def by_status(self, status: str) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def error_list(self) -> List[Dict[str, Any]]:
        """Failed items with enough context to retry them by hand."""
        return [
            {"sku": o.sku, "product_id": o.product_id, "url": o.url, "error": o.error}
            for o in self.outcomes if o.status == ERROR
        ]

    def counts(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "found": self.found,
            "not_found": self.not_found,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "counts": self.counts(),
            "errors": self.error_list,
            "outcomes": [asdict(o) for o in self.outcomes],
        }

    def save(self, data_dir: Union[str, Path] = DATA_DIR) -> Path:
        """Write ``run-<name>-<timestamp>.json`` into ``data_dir``."""
        data_dir = Path(data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        path = data_dir / f"run-{self.name}-{stamp}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info(f"Run report saved to: {path}")
        return path

    def print_summary(self) -> None:
        print(f"\n{'='*60}")
        print(f"SUMMARY: {self.name}")
        print(f"{'='*60}")
        for label, value in self.counts().items():
            print(f"  {label.replace('_', ' ').title():<12} {value:>6}")
        if self.errors:
            print("\nErrors:")
            for item in self.error_list[:20]:
                print(f"  - {item['sku'] or item['url']}: {item['error']}")
            if self.errors > 20:
                print(f"  ... and {self.errors - 20} more (see run report)")
