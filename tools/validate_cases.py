from __future__ import annotations
from collections import Counter
import os, sys
from case_core.case_bank import load_cases, section_keys, KEYED_SECTIONS
from case_core.config import resolve_scoring
from case_core.normalize import normalize_key, normalize_drug
from case_core.rules import rule_section

# Case bank sanity checks; CASES_PATH (or argv[1]) picks the file
MIN_REQUIRED = int(os.getenv("TARGET_REQUIRED_MIN", 1))


def check_case(case: dict) -> list[str]:
    problems: list[str] = []
    cid = case.get("id") or "?"
    if not case.get("final_diagnosis"):
        problems.append("final_diagnosis missing")
    scoring = resolve_scoring(case.get("scoring"))

    if len(scoring.required) < MIN_REQUIRED:
        problems.append(f"only {len(scoring.required)} required rule(s)")

    drugs = {normalize_drug(d.get("name", "")) for d in case.get("drugs") or [] if isinstance(d, dict)}
    for rule in [*scoring.required, *scoring.bonus]:
        section = rule_section(rule.type)
        if section in KEYED_SECTIONS:
            keys = {normalize_key(k) for k in section_keys(case, section)}
            if normalize_key(rule.key) not in keys:
                problems.append(f"{rule.kind} rule {rule.type}:{rule.key} has no answer in '{section}'")
        elif section == "drugs" and normalize_drug(rule.key) not in drugs:
            problems.append(f"{rule.kind} rule drug:{rule.key} is not in the drug list")

    seen = Counter((r.kind, r.category, normalize_key(r.key)) for r in [*scoring.required, *scoring.unnecessary, *scoring.bonus])
    for (kind, cat, key), n in seen.items():
        if n > 1:
            problems.append(f"{kind} rule '{key}' ({cat}) listed {n} times")

    for section in KEYED_SECTIONS:
        if not (case.get(section) or {}).get("default"):
            problems.append(f"section '{section}' has no default text")
    return [f"{cid}: {p}" for p in problems]


def main():
    data = load_cases(sys.argv[1] if len(sys.argv) > 1 else None)
    cases = data.get("cases") or []
    ids = Counter(c.get("id") for c in cases)
    dupes = [cid for cid, n in ids.items() if n > 1]
    print(f"{len(cases)} case(s), featured: {data.get('featured_case_id')}\n")
    total = 0
    for cid in dupes:
        print(f"  ✗ duplicate case id {cid}"); total += 1
    for case in cases:
        problems = check_case(case)
        total += len(problems)
        if problems:
            for p in problems: print(f"  ✗ {p}")
        else:
            print(f"  ✓ {case.get('id')}")
    return 1 if total else 0

if __name__ == "__main__":
    sys.exit(main())
