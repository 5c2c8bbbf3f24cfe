import json
import sys

import cli
from api.schemas.dashboard import Profile
from api.services.fallback_generator import generate_deterministic


def test_repairs_raw_dump(tmp_path, monkeypatch):
    profile = Profile(name="Maya", birthdate="1992-04-03")
    raw = "Here you go:\n```json\n" + generate_deterministic(profile, "2025-05-01") + "\n```"
    in_path = tmp_path / "raw.txt"
    out_path = tmp_path / "dashboard.json"
    in_path.write_text(raw, encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["cli.py", str(in_path), str(out_path)])

    assert cli.main() == 0
    data = json.loads(out_path.read_text(encoding="utf-8"))
    assert data["meta"]["name"] == "Maya"


def test_reports_violation(tmp_path, monkeypatch, capsys):
    in_path = tmp_path / "raw.txt"
    out_path = tmp_path / "dashboard.json"
    in_path.write_text('{"meta": {"name": "Maya"}}', encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["cli.py", str(in_path), str(out_path)])

    assert cli.main() == 1
    assert not out_path.exists()
    assert "at today: required field is missing" in capsys.readouterr().out
