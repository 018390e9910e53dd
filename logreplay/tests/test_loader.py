import json
from pathlib import Path

import pytest

from logreplay.errors import MalformedEntry
from logreplay.loader import load_log_file, load_log_text

SAMPLE = Path(__file__).resolve().parents[2] / "log_examples" / "sample.json"


def log_obj(accessed_at="2020-06-22 04:24:00.678451 UTC", url="http://prod.example.com/a", method="GET"):
    return {
        "accessed_at": accessed_at,
        "url": url,
        "http_method": method,
        "http_header": {},
        "http_body": "",
    }


def test_resolve_sample_log():
    entries = load_log_file(SAMPLE)

    assert len(entries) == 4
    assert [e.method for e in entries] == ["GET", "POST", "GET", "DELETE"]


def test_json_array_and_ndjson_agree():
    objs = [log_obj(url="http://prod.example.com/a"), log_obj(url="http://prod.example.com/b")]
    from_array = load_log_text(json.dumps(objs))
    from_lines = load_log_text("\n".join(json.dumps(o) for o in objs) + "\n\n")

    assert from_array == from_lines
    assert [e.url for e in from_lines] == ["http://prod.example.com/a", "http://prod.example.com/b"]


def test_empty_log():
    assert load_log_text("[]") == []
    assert load_log_text("") == []


def test_invalid_entry_fails_whole_load():
    text = json.dumps([log_obj(), log_obj(method="FETCH")])

    with pytest.raises(MalformedEntry, match="entry 1"):
        load_log_text(text)


def test_skip_invalid_drops_bad_entries(caplog):
    text = json.dumps([log_obj(), log_obj(method="FETCH"), log_obj(url="http://prod.example.com/c")])

    entries = load_log_text(text, skip_invalid=True)

    assert [e.url for e in entries] == ["http://prod.example.com/a", "http://prod.example.com/c"]
    assert "Skipping entry 1" in caplog.text


def test_broken_json():
    with pytest.raises(MalformedEntry):
        load_log_text("[{\"accessed_at\": ")
    with pytest.raises(MalformedEntry, match="line 2"):
        load_log_text(json.dumps(log_obj()) + "\n{oops}\n")
