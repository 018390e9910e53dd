"""
Console and file reporting for replay outcomes.
"""

import json
from collections import Counter
from pathlib import Path
from typing import Dict, List, Sequence

from logreplay.dispatcher import TargetConfig, resolve_url
from logreplay.outcome import Failed, ReplayOutcome, Skipped, Succeeded
from logreplay.timeline import Timeline


def format_outcome(position: int, total: int, url: str, method: str, outcome: ReplayOutcome) -> str:
    """One console line, e.g. "[3/20] GET http://host/a -> 200 (12.3ms)"."""
    status = outcome.status
    if isinstance(status, Succeeded):
        result = str(status.status_code)
        if outcome.latency is not None:
            result += f" ({outcome.latency * 1000:.1f}ms)"
    elif isinstance(status, Failed):
        result = f"FAILED {status.kind.value}: {status.detail}"
    else:
        result = f"SKIPPED {status.reason.value}"
    return f"[{position + 1}/{total}] {method} {url} -> {result}"


def outcome_record(timeline: Timeline, position: int, outcome: ReplayOutcome, target: TargetConfig) -> Dict:
    entry = timeline[position].entry
    status = outcome.status
    return {
        "index": outcome.index,
        "method": entry.method,
        "url": resolve_url(entry.url, target),
        "outcome": status.label,
        "status_code": status.status_code if isinstance(status, Succeeded) else None,
        "error": status.detail if isinstance(status, Failed) else None,
        "dispatched_at": outcome.dispatched_at.isoformat() if outcome.dispatched_at else None,
        "latency_ms": round(outcome.latency * 1000, 2) if outcome.latency is not None else None,
        "attempts": outcome.attempts,
    }


def write_results(output_path, timeline: Timeline, outcomes: Sequence[ReplayOutcome], target: TargetConfig) -> int:
    """Write one JSON object per outcome (NDJSON). Returns the number written."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as out:
        for position, outcome in enumerate(outcomes):
            out.write(json.dumps(outcome_record(timeline, position, outcome, target)) + "\n")
    return len(outcomes)


def summarize(outcomes: Sequence[ReplayOutcome]) -> Dict[str, int]:
    """Count outcomes by label, plus a total."""
    counts = Counter(o.status.label for o in outcomes)
    summary = dict(sorted(counts.items()))
    summary["total"] = len(outcomes)
    return summary


def status_code_breakdown(outcomes: Sequence[ReplayOutcome]) -> Dict[str, int]:
    """Count received responses by class: 2xx, 3xx, 4xx, 5xx."""
    classes = Counter(
        f"{o.status.status_code // 100}xx" for o in outcomes if isinstance(o.status, Succeeded)
    )
    return dict(sorted(classes.items()))


def format_summary(outcomes: Sequence[ReplayOutcome], state: str) -> List[str]:
    summary = summarize(outcomes)
    total = summary.pop("total")
    sent = sum(1 for o in outcomes if not isinstance(o.status, Skipped))
    lines = [
        "=" * 60,
        f"Replay {state}: {sent}/{total} requests sent",
    ]
    for label, count in summary.items():
        lines.append(f"   {label}: {count}")
    breakdown = status_code_breakdown(outcomes)
    if breakdown:
        lines.append("   responses: " + ", ".join(f"{k}={v}" for k, v in breakdown.items()))
    lines.append("=" * 60)
    return lines
