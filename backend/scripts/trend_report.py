#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from design_intel.models.base import get_session_factory
from design_intel.services.trends import TrendAnalyzer


def main() -> None:
    parser = argparse.ArgumentParser(description="Print the current design trend report as JSON.")
    parser.add_argument("--now", default=None, help="ISO timestamp to evaluate the windows at (UTC)")
    parser.add_argument("--trend", default=None, help="Only print the trajectory for this trend id")
    parser.add_argument("--out", default=None, help="Write the report to this path instead of stdout")
    args = parser.parse_args()

    now = datetime.fromisoformat(args.now) if args.now else None
    if now is not None and now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    db = get_session_factory()()
    try:
        analyzer = TrendAnalyzer(db)
        if args.trend:
            payload = analyzer.predict_trajectory(args.trend, now=now).as_dict()
        else:
            payload = analyzer.generate_trend_report(now=now)
    finally:
        db.close()

    text = json.dumps(payload, indent=2, sort_keys=True)
    if args.out:
        Path(args.out).write_text(text + "\n")
        print(f"Wrote {args.out}")
    else:
        print(text)


if __name__ == "__main__":
    main()
