import json
import sys
from pathlib import Path

from api.services.dashboard_orchestrator import evaluate_candidate


def main() -> int:
    in_path = Path(sys.argv[1])
    out_path = Path(sys.argv[2])
    raw = in_path.read_text(encoding="utf-8")
    evaluation = evaluate_candidate(raw)
    fired = evaluation.report.fired()
    if fired:
        print(f"Sanitizer repairs: {', '.join(fired)}")
    if not evaluation.accepted:
        where = evaluation.field_path or "(parse)"
        print(f"Rejected ({evaluation.classification.value}) at {where}: {evaluation.reason}")
        return 1
    output = json.dumps(evaluation.payload.model_dump(), ensure_ascii=False, indent=2)
    out_path.write_text(output, encoding="utf-8")
    print(f"Wrote repaired dashboard → {out_path}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python cli.py raw_output.txt dashboard.json")
        sys.exit(1)
    sys.exit(main())
