from __future__ import annotations
import datetime
import html
import json
from pathlib import Path
from typing import Dict
import logging

from .aggregator import TaskSummary
from .models import TaskType
from .settings import APP_DIR

logger = logging.getLogger(__name__)

REPORTS_DIR = APP_DIR / "reports"


def _stamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d-%H%M%S")


def _payload(session_id: str, summaries: Dict[TaskType, TaskSummary]) -> Dict:
    return {
        "session_id": session_id,
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "tasks": [s.to_dict() for s in summaries.values()],
    }


def write_json(session_id: str, summaries: Dict[TaskType, TaskSummary]) -> Path:
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    path = Path(REPORTS_DIR) / f"{session_id}-{_stamp()}.json"
    path.write_text(json.dumps(_payload(session_id, summaries), indent=2), encoding="utf-8")
    logger.info("Wrote %s", path)
    return path


_ROW = "<tr><td>{task}</td><td>{done}</td><td>{keys}</td><td>{dwell:.1f}</td><td>{flight:.1f}</td><td>{ptr}</td><td>{speed:.3f}</td></tr>"


def write_html(session_id: str, summaries: Dict[TaskType, TaskSummary]) -> Path:
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    path = Path(REPORTS_DIR) / f"{session_id}-{_stamp()}.html"
    rows = "\n".join(
        _ROW.format(task=html.escape(s.task_type.value.title()), done=s.completion_time,
                    keys=s.keystroke_count, dwell=s.avg_dwell_ms, flight=s.avg_flight_ms,
                    ptr=s.pointer_count, speed=s.avg_speed)
        for s in summaries.values()
    )
    doc = f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>BDyn session {html.escape(session_id)}</title>
<style>body{{font-family:sans-serif;margin:2em}}table{{border-collapse:collapse}}td,th{{border:1px solid #ccc;padding:4px 10px;text-align:right}}</style>
</head><body>
<h1>Task performance: {html.escape(session_id)}</h1>
<table>
<tr><th>Task</th><th>Completion (ms)</th><th>Keystrokes</th><th>Avg dwell (ms)</th><th>Avg flight (ms)</th><th>Pointer events</th><th>Avg speed (px/ms)</th></tr>
{rows}
</table>
</body></html>
"""
    path.write_text(doc, encoding="utf-8")
    logger.info("Wrote %s", path)
    return path
