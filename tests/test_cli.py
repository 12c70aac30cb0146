import asyncio
import contextlib
import io
import json

from tourist_sentinel.cli import load_zones, main, replay
from tourist_sentinel.config import Settings

from testkit.builders import ORIGIN, walk


def _write_inputs(tmp_path):
    fixes = tmp_path / "fixes.jsonl"
    lines = []
    for fix in walk(3):
        record = json.loads(fix.model_dump_json())
        record["tourist_id"] = "t-1"
        lines.append(json.dumps(record))
    lines.insert(1, "{broken")
    lines.append(json.dumps({"tourist_id": "t-1", "timestamp": "2024-05-01T10:10:00Z", "lat": 400, "lng": 0}))
    fixes.write_text("\n".join(lines) + "\n")

    zones = tmp_path / "zones.json"
    zones.write_text(json.dumps([{
        "id": "z-1", "name": "Old Town",
        "center": {"lat": ORIGIN[0], "lng": ORIGIN[1]},
        "radius_meters": 300, "risk_level": "medium", "incident_count": 1,
    }]))
    return fixes, zones


def test_load_zones(tmp_path):
    _, zones = _write_inputs(tmp_path)
    loaded = load_zones(str(zones))
    assert loaded[0].id == "z-1"
    assert loaded[0].risk_level.value == "medium"


def test_replay_prints_stream_messages(tmp_path, capsys):
    fixes, zones = _write_inputs(tmp_path)
    assert main([str(fixes), "--zones", str(zones), "--log-level", "ERROR"]) == 0

    messages = []
    for line in capsys.readouterr().out.splitlines():
        try:
            record = json.loads(line)
        except ValueError:
            continue
        if isinstance(record, dict) and {"type", "tourist_id", "data"} <= set(record):
            messages.append(record)

    types = [m["type"] for m in messages]
    assert types.count("safety_score") == 3
    assert types.count("zone_transition") == 1
    assert all(m["tourist_id"] == "t-1" for m in messages)


def test_replay_writes_to_current_stdout(tmp_path):
    fixes, _ = _write_inputs(tmp_path)
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        assert main([str(fixes), "--log-level", "ERROR"]) == 0

    types = [json.loads(line).get("type") for line in buf.getvalue().splitlines() if line.startswith("{")]
    assert types.count("safety_score") == 3


def test_replay_writes_to_given_stream(tmp_path):
    fixes, _ = _write_inputs(tmp_path)
    out = io.StringIO()

    emitted = asyncio.run(replay(str(fixes), [], Settings(), out=out))

    assert emitted == len(out.getvalue().splitlines())
    assert emitted == 3
