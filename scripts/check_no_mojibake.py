#!/usr/bin/env python3
"""Fail when Korean/Hanja source text looks corrupted.

Two checks: suspicious byte-mangling patterns anywhere in scope, and a set of
canonical honorific literals that must survive verbatim in the files that
define them.
"""

from pathlib import Path
import re
import sys

ROOT = Path(__file__).resolve().parents[1]
INCLUDE_EXT = {".py", ".md", ".txt", ".json", ".yaml", ".yml"}
EXCLUDE_DIRS = {".git", "__pycache__", ".venv", ".pytest_cache"}
SELF_PATH = Path(__file__).resolve()
DEFAULT_SCOPE = [ROOT / "backend", ROOT / "frontend"]

SUSPICIOUS_PATTERNS = [
    re.compile(r"\?{4,}"),
    re.compile("\uFFFD"),
    re.compile(r"\?ㅽ|\?덉|\?꾩"),
    re.compile(r"[留湲곕낯댁긽꾩쟾뒿]{2,}"),
]

REQUIRED_LITERALS = {
    ROOT / "backend" / "prompts.py": ["顯考", "顯妣", "學生", "府君", "神位", "孺人", "참고 정보"],
    ROOT / "backend" / "tablet_state.py": ["현고학생부군신위", "顯考學生府君神位"],
    ROOT / "backend" / "footer_label.py": ["직접 입력", "(합설)", "(삼위 합설)"],
}


def should_scan(path: Path) -> bool:
    if path.resolve() == SELF_PATH:
        return False
    if path.suffix.lower() not in INCLUDE_EXT:
        return False
    if any(part in EXCLUDE_DIRS for part in path.parts):
        return False
    return path.is_file()


def collect_targets(argv: list[str]) -> list[Path]:
    if argv:
        return [Path(arg).resolve() for arg in argv]
    return DEFAULT_SCOPE


def scan_patterns(targets: list[Path]) -> list[tuple[Path, int, str]]:
    failed = []
    for target in targets:
        if target.is_dir():
            paths = [p for p in target.rglob("*") if should_scan(p)]
        else:
            paths = [target] if should_scan(target) else []

        for path in paths:
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except UnicodeDecodeError:
                failed.append((path, 0, "non-utf8 file"))
                continue

            for idx, line in enumerate(lines, start=1):
                for pattern in SUSPICIOUS_PATTERNS:
                    if pattern.search(line):
                        failed.append((path, idx, line.strip()))
                        break
    return failed


def check_literals() -> list[tuple[Path, int, str]]:
    failed = []
    for path, literals in REQUIRED_LITERALS.items():
        if not path.is_file():
            continue
        text = path.read_text(encoding="utf-8", errors="replace")
        for literal in literals:
            if literal not in text:
                failed.append((path, 0, f"missing literal {literal!r}"))
    return failed


def main() -> int:
    failed = scan_patterns(collect_targets(sys.argv[1:])) + check_literals()

    if failed:
        print("Detected suspicious mojibake/corrupted Korean text:")
        for path, line_no, line in failed:
            rel = path.relative_to(ROOT) if path.is_absolute() and str(path).startswith(str(ROOT)) else path
            print(f"- {rel}:{line_no}: {line}")
        return 1

    print("No suspicious mojibake/corrupted Korean text detected.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
