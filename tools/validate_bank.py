from __future__ import annotations
from collections import Counter
import argparse, sys
from attempt_core.question_bank import load_bank
from attempt_core.validators import bank_problems, manual_only_items


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Check a question bank before papers go live.")
    ap.add_argument("path", nargs="?", default=None, help="bank.json (defaults to BANK_PATH or the bundled bank)")
    a = ap.parse_args(argv)
    bank = load_bank(a.path)

    types = Counter(it.type for it in bank.items())
    print(f"Items: {len(bank.items())} ({', '.join(f'{k}={v}' for k, v in sorted(types.items()))})")
    for paper in bank.papers():
        timed = f"{paper.duration_seconds // 60} min" if paper.duration_seconds else "untimed"
        state = "published" if paper.is_published else "draft"
        print(f"  {paper.id}: {len(paper.items)} questions, {timed}, {state}")

    manual = manual_only_items(bank)
    if manual:
        print(f"\nNeed manual marking ({len(manual)}): {', '.join(manual)}")

    problems = bank_problems(bank)
    if problems:
        print(f"\n{len(problems)} problem(s):")
        for p in problems:
            print(f"  → {p}")
        return 2
    print("\n✓ Bank is consistent")
    return 0


if __name__ == "__main__":
    sys.exit(main())
