from __future__ import annotations

import json
from datetime import datetime, timezone

from lawdir.ops_logger import OpsLogger


def test_emit_appends_json_lines(tmp_path):
    path = tmp_path / "logs" / "ops.log"
    logger = OpsLogger(path)
    logger.emit({"url": "https://www.avvo.com/x", "counts": {"records": 2}})
    logger.emit({"summary": True, "at": datetime(2024, 1, 1, tzinfo=timezone.utc)})

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert lines[0] == {"lde_ops": 1, "url": "https://www.avvo.com/x", "counts": {"records": 2}}
    assert lines[1]["summary"] is True
    assert lines[1]["at"].startswith("2024-01-01")


def test_emit_mirrors_to_stdout(tmp_path, capsys):
    OpsLogger(tmp_path / "ops.log", also_stdout=True).emit({"label": "API"})
    assert '"label": "API"' in capsys.readouterr().out


def test_emit_never_raises_on_unwritable_path(tmp_path):
    target = tmp_path / "dir-as-file"
    target.mkdir()
    OpsLogger(target).emit({"x": 1})


def test_emit_summary_carries_stats_and_resources(tmp_path):
    from lawdir.schemas import RunStats

    path = tmp_path / "ops.log"
    logger = OpsLogger(path)
    stats = RunStats(total_records=3, pages_processed=1)
    logger.emit_summary(stats, requests=2, wall_s=1.234)

    line = json.loads(path.read_text(encoding="utf-8"))
    assert line["lde_ops"] == 1
    assert line["summary"] is True
    assert line["requests"] == 2
    assert line["stats"]["totalLawyersScraped"] == 3
    assert line["durations"]["wall_s"] == 1.23
    assert set(line["resources"]) == {"cpu_pct", "rss_mb"}
    assert logger.lines_written == 1
