"""Run report model and serialization for command-line runs."""

import json
import math
import os
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


def _sanitize_for_json(obj: Any) -> Any:
    """Recursively replace NaN/Inf and convert datetimes so the report is valid JSON."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, bool) or obj is None or isinstance(obj, (int, str)):
        return obj
    if isinstance(obj, float):
        return 0.0 if (math.isnan(obj) or math.isinf(obj)) else obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    # decimal.Decimal and other number-likes (do not float(str))
    try:
        f = float(obj)
        if math.isnan(f) or math.isinf(f):
            return 0.0
        return f
    except (TypeError, ValueError):
        pass
    return str(obj)


@dataclass
class RunReport:
    """Report of one validation run."""
    run_id: str
    input_path: str
    started_at: str
    finished_at: Optional[str] = None
    status: str = "RUNNING"  # RUNNING, COMPLETED, FAILED
    profile_name: Optional[str] = None

    summary: Optional[Dict[str, Any]] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    alerts: List[Dict[str, Any]] = field(default_factory=list)
    discrepancies: List[Dict[str, Any]] = field(default_factory=list)  # Flagged results only

    @classmethod
    def create(cls, input_path: str, profile_name: Optional[str] = None) -> "RunReport":
        """Create a new run report."""
        return cls(
            run_id=str(uuid.uuid4()),
            input_path=str(input_path),
            started_at=datetime.now().isoformat(),
            profile_name=profile_name,
        )

    def complete(self, status: str = "COMPLETED"):
        """Mark run as finished."""
        self.status = status
        self.finished_at = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return _sanitize_for_json(asdict(self))

    def save(self, path: Path):
        """Save report to JSON file (atomic write to avoid truncated file on interrupt)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
