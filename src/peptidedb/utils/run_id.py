import uuid
from datetime import datetime, timezone


def make_run_id(prefix: str = "enrich") -> str:
    # e.g., enrich-20260818T052310Z-3fa2
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:4]}"
