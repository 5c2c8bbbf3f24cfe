#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api.schemas.dashboard import Profile
from api.services.constants import MOODS, PERSONALITIES
from api.services.fallback_generator import generate_deterministic
from api.services.payload_normalizer import normalize
from api.services.payload_validator import validate


def _date_range(start: date, days: int) -> Iterable[str]:
    for offset in range(days):
        yield (start + timedelta(days=offset)).isoformat()


def summarize_fallbacks(start: date, days: int, birthdate: str) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for mood in MOODS[:6]:
        profile = Profile(name="Coverage", birthdate=birthdate, mood=mood, personality=PERSONALITIES[0])
        headlines: set[str] = set()
        subheads: set[str] = set()
        phases: Counter[str] = Counter()
        invalid: list[str] = []
        for date_iso in _date_range(start, days):
            parsed = json.loads(generate_deterministic(profile, date_iso))
            outcome = validate(normalize(parsed))
            if not outcome.is_valid:
                invalid.append(f"{date_iso}:{outcome.violation.field_path}")
                continue
            headlines.add(parsed["today"]["headline"])
            subheads.add(parsed["today"]["subhead"])
            phases[parsed["cosmicWeather"]["moon"]["phase"]] += 1
        rows.append(
            {
                "mood": mood,
                "unique_headlines": len(headlines),
                "unique_subheads": len(subheads),
                "phase_histogram": dict(phases),
                "invalid": invalid,
            }
        )
    return rows


def main() -> None:
    parser = argparse.ArgumentParser(description="Report variety and validity of fallback dashboards.")
    parser.add_argument("--start", type=date.fromisoformat, default=date(2025, 1, 1), help="First date (default: 2025-01-01)")
    parser.add_argument("--days", type=int, default=30, help="Number of consecutive days to evaluate (default: 30)")
    parser.add_argument("--birthdate", default="1992-04-03", help="Birthdate for the sample profile")
    args = parser.parse_args()

    rows = summarize_fallbacks(args.start, args.days, args.birthdate)
    widest = max(len(row["mood"]) for row in rows)
    header = f"{'Mood'.ljust(widest)}  Headlines  Subheads  Invalid  Phases"
    print(header)
    print("-" * len(header))
    for row in rows:
        phases = ", ".join(f"{name}x{count}" for name, count in sorted(row["phase_histogram"].items()))
        print(
            f"{row['mood'].ljust(widest)}  {row['unique_headlines']:<9}  {row['unique_subheads']:<8}  "
            f"{len(row['invalid']):<7}  {phases}"
        )
    if any(row["invalid"] for row in rows):
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI utility
    main()
