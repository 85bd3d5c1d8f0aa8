"""Logging utilities"""

import json
from datetime import datetime
from zoneinfo import ZoneInfo

import fpl_meter_status.config as config


def log_result(job_id, row_index, address, outcome, unit=None, entry=None, **fields):
    """Append one row outcome to the JSONL result log and echo it"""
    record = {
        "timestamp": datetime.now(ZoneInfo("America/New_York")).isoformat(),
        "job_id": job_id,
        "row_index": row_index,
        "address": address,
        "unit": unit,
        "outcome": outcome,
        "entry": entry,
    }
    record.update({key: value for key, value in fields.items() if value is not None})

    path = config.RESULT_LOG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False) + "\n")

    print(f"[{outcome}] row {row_index + 1}: {address}" + (f" (Unit: {unit})" if unit else ""))
    if fields.get("error"):
        print(f"  Reason: {fields['error']}")
