import json
from datetime import datetime, timezone

from logreplay.dispatcher import TargetConfig
from logreplay.outcome import Failed, FailureKind, ReplayOutcome, Skipped, SkipReason, Succeeded
from logreplay.report import format_outcome, format_summary, summarize, write_results
from logreplay.timeline import build_timeline

from conftest import make_entry

SENT_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def sample_run():
    timeline = build_timeline([
        make_entry(0, url="http://prod.example.com/a"),
        make_entry(1, url="http://prod.example.com/b", method="POST"),
        make_entry(2, url="http://prod.example.com/c"),
        make_entry(3, url="http://prod.example.com/d"),
    ])
    outcomes = [
        ReplayOutcome(0, Succeeded(200), SENT_AT, 0.0123, 1),
        ReplayOutcome(1, Succeeded(503), SENT_AT, 0.2, 1),
        ReplayOutcome(2, Failed(FailureKind.TIMEOUT, "timed out"), SENT_AT, 30.0, 1),
        ReplayOutcome(3, Skipped(SkipReason.CANCELLED)),
    ]
    return timeline, outcomes


def test_format_outcome_lines():
    _, outcomes = sample_run()

    assert format_outcome(0, 4, "http://h/a", "GET", outcomes[0]) == "[1/4] GET http://h/a -> 200 (12.3ms)"
    assert format_outcome(2, 4, "http://h/c", "GET", outcomes[2]) == "[3/4] GET http://h/c -> FAILED timeout: timed out"
    assert format_outcome(3, 4, "http://h/d", "GET", outcomes[3]) == "[4/4] GET http://h/d -> SKIPPED cancelled"


def test_summary_counts():
    _, outcomes = sample_run()

    assert summarize(outcomes) == {
        "failed_timeout": 1,
        "skipped_cancelled": 1,
        "succeeded": 2,
        "total": 4,
    }
    text = "\n".join(format_summary(outcomes, "aborted"))
    assert "Replay aborted: 3/4 requests sent" in text
    assert "responses: 2xx=1, 5xx=1" in text


def test_write_results_ndjson(tmp_path):
    timeline, outcomes = sample_run()
    out = tmp_path / "results" / "run.ndjson"

    count = write_results(out, timeline, outcomes, TargetConfig(base_url="http://localhost:8081"))

    rows = [json.loads(line) for line in out.read_text().splitlines()]
    assert count == 4
    assert rows[0] == {
        "index": 0,
        "method": "GET",
        "url": "http://localhost:8081/a",
        "outcome": "succeeded",
        "status_code": 200,
        "error": None,
        "dispatched_at": "2024-01-01T12:00:00+00:00",
        "latency_ms": 12.3,
        "attempts": 1,
    }
    assert rows[2]["error"] == "timed out"
    assert rows[3]["outcome"] == "skipped_cancelled"
    assert rows[3]["latency_ms"] is None
