#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

sys.path.append("src")
from shared.faq_store import create_faq_db  # noqa: E402
from shared.schema import FAQRecord  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or extend the FAQ sqlite database")
    parser.add_argument("--db", default="db/faq.db", help="Database file to write")
    parser.add_argument(
        "--source",
        default="scripts/sample_faqs.json",
        help="JSON file with a list of {question, answer} objects",
    )
    args = parser.parse_args()

    rows = json.loads(Path(args.source).read_text(encoding="utf-8"))
    records = [FAQRecord(question=str(row["question"]), answer=str(row["answer"])) for row in rows]
    count = create_faq_db(args.db, records)
    print(f"Inserted {count} FAQ rows into {args.db}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
