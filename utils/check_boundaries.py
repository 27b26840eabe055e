#!/usr/bin/env python3
# ruff: noqa: T201
"""Architectural boundary validation for Pillaflow.

Run standalone: python utils/check_boundaries.py
Exit code 0 = all checks pass, 1 = violations found

Checks:
1. Purity Boundary - No homeassistant.* imports in engines, utils and builders
2. Service Writes - services.py and config_flow.py never touch the store
3. Emit Order - Managers persist before they emit
4. Code Quality - Translation constants, lazy logging, type syntax, exceptions
"""

from __future__ import annotations

from pathlib import Path
import re
import sys
from typing import NamedTuple

# Base paths
REPO_ROOT = Path(__file__).parent.parent
COMPONENT_PATH = REPO_ROOT / "custom_components" / "pillaflow"

# Pure modules that must not import homeassistant
PURE_MODULE_PATHS = [
    COMPONENT_PATH / "utils",
    COMPONENT_PATH / "engines",
    COMPONENT_PATH / "data_builders.py",
    COMPONENT_PATH / "type_defs.py",
]

# Files that must delegate writes to a manager or the coordinator
NO_WRITE_FILES = [
    COMPONENT_PATH / "config_flow.py",
    COMPONENT_PATH / "services.py",
]

# Broad catches are allowed where a time listener delivers notifications
BARE_EXCEPTION_ALLOWLIST = [
    "config_flow.py",
    "notification_manager.py",
]


class Violation(NamedTuple):
    """A boundary violation with context."""

    category: str
    file_path: Path
    line_number: int
    line_content: str
    message: str


def _iter_files(paths: list[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_file():
            files.append(path)
        elif path.is_dir():
            files.extend(sorted(path.rglob("*.py")))
    return files


def _scan(
    files: list[Path],
    patterns: list[re.Pattern[str]],
    category: str,
    message: str,
) -> list[Violation]:
    """Flag every line in files that matches any of patterns."""
    violations = []
    for file_path in files:
        try:
            lines = file_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            print(f"Warning: Could not read {file_path}: {e}", file=sys.stderr)
            continue
        for line_num, line in enumerate(lines, start=1):
            if any(pattern.search(line) for pattern in patterns):
                violations.append(
                    Violation(category, file_path, line_num, line.strip(), message)
                )
    return violations


def find_ha_imports_in_pure_modules() -> list[Violation]:
    """No homeassistant imports in pure modules."""
    return _scan(
        _iter_files(PURE_MODULE_PATHS),
        [
            re.compile(r"^\s*from\s+homeassistant"),
            re.compile(r"^\s*import\s+homeassistant"),
        ],
        "PURITY",
        "Homeassistant import in pure module",
    )


def find_storage_writes_in_service_layer() -> list[Violation]:
    """No direct store access from services or flows."""
    return _scan(
        _iter_files(NO_WRITE_FILES),
        [
            re.compile(r"\.store\.async_(set|remove)\("),
            re.compile(r"coordinator\.(habits|tasks|routines|health_data)\s*\[.*\]\s*="),
            re.compile(r"coordinator\.async_set_updated_data\("),
        ],
        "CRUD",
        "Direct storage write in service layer - must delegate to a manager",
    )


def find_emit_before_persist() -> list[Violation]:
    """Within each manager method, the first store write precedes any emit."""
    violations = []
    emit_pattern = re.compile(r"self\.emit\(")
    persist_pattern = re.compile(r"(_persist\(|store\.async_set\()")
    method_pattern = re.compile(r"^\s+(async\s+)?def\s+(\w+)\s*\(")

    for file_path in _iter_files([COMPONENT_PATH / "managers"]):
        lines = file_path.read_text(encoding="utf-8").splitlines()

        starts = [
            (i, match.group(2))
            for i, line in enumerate(lines)
            if (match := method_pattern.match(line))
        ]
        bounds = [
            (name, start, starts[idx + 1][0] if idx + 1 < len(starts) else len(lines))
            for idx, (start, name) in enumerate(starts)
        ]

        for method_name, start, end in bounds:
            emit_lines = [
                i + 1 for i in range(start, end) if emit_pattern.search(lines[i])
            ]
            persist_lines = [
                i + 1 for i in range(start, end) if persist_pattern.search(lines[i])
            ]
            if not emit_lines or not persist_lines:
                continue
            first_persist = min(persist_lines)
            for emit_line in emit_lines:
                if emit_line < first_persist:
                    violations.append(
                        Violation(
                            "EMIT_ORDER",
                            file_path,
                            emit_line,
                            lines[emit_line - 1].strip(),
                            f"Emit before persist in {method_name}() - "
                            f"persist on line {first_persist}",
                        )
                    )
    return violations


def find_hardcoded_translation_keys() -> list[Violation]:
    """translation_key must use const.TRANS_KEY_* constants."""
    violations = []
    patterns = [
        re.compile(r'translation_key\s*=\s*["\']([^"\']+)["\']'),
        re.compile(r'translation_domain\s*=\s*["\']([^"\']+)["\']'),
    ]
    for violation in _scan(
        _iter_files([COMPONENT_PATH]),
        patterns,
        "TRANSLATION",
        "Use const.TRANS_KEY_* for translation_key, const.DOMAIN for translation_domain",
    ):
        if "const.TRANS_KEY_" in violation.line_content:
            continue
        violations.append(violation)
    return violations


def find_fstrings_in_logging() -> list[Violation]:
    """No f-strings in logging statements."""
    return _scan(
        _iter_files([COMPONENT_PATH]),
        [
            re.compile(
                r'(LOGGER|const\.LOGGER)\.(debug|info|warning|error|exception)\s*\(\s*f["\']'
            )
        ],
        "LOGGING",
        'Use lazy logging: logger.debug("msg: %s", var) not f"msg: {var}"',
    )


def find_old_typing_syntax() -> list[Violation]:
    """Modern type syntax (str | None, not Optional[str])."""
    return _scan(
        _iter_files([COMPONENT_PATH]),
        [re.compile(r"\bOptional\[")],
        "TYPE_SYNTAX",
        'Use modern syntax: "str | None" instead of "Optional[str]"',
    )


def find_bare_exceptions() -> list[Violation]:
    """No bare Exception catches outside the allow-list."""
    files = [
        path
        for path in _iter_files([COMPONENT_PATH])
        if path.name not in BARE_EXCEPTION_ALLOWLIST
    ]
    return _scan(
        files,
        [
            re.compile(r"^\s*except\s*:"),
            re.compile(r"^\s*except\s+(Exception|BaseException)\s*:"),
        ],
        "EXCEPTION",
        "Use specific exception types, not bare Exception",
    )


CHECKS = [
    ("Purity Boundary", find_ha_imports_in_pure_modules),
    ("Service Writes", find_storage_writes_in_service_layer),
    ("Emit Before Persist", find_emit_before_persist),
    ("Translation Constants", find_hardcoded_translation_keys),
    ("Logging Quality", find_fstrings_in_logging),
    ("Type Syntax", find_old_typing_syntax),
    ("Exception Handling", find_bare_exceptions),
]


def format_violations(violations: list[Violation]) -> str:
    """Format violations for display."""
    by_category: dict[str, list[Violation]] = {}
    for v in violations:
        by_category.setdefault(v.category, []).append(v)

    output = []
    for category, items in sorted(by_category.items()):
        output.append(f"\n{'=' * 80}")
        output.append(f"❌ {category} VIOLATIONS ({len(items)} found)")
        output.append(f"{'=' * 80}")
        for v in items:
            rel_path = v.file_path.relative_to(REPO_ROOT)
            output.append(f"\n📁 {rel_path}:{v.line_number}")
            output.append(f"   {v.line_content}")
            output.append(f"   ⚠️  {v.message}")

    return "\n".join(output)


def main() -> int:
    """Run all boundary checks."""
    print("🔍 Running architectural boundary checks...")
    print(f"   Checking: {COMPONENT_PATH.relative_to(REPO_ROOT)}\n")

    all_violations: list[Violation] = []
    for check_name, check_func in CHECKS:
        print(f"   ⏳ Checking {check_name}...", end=" ")
        violations = check_func()
        if violations:
            print(f"❌ {len(violations)} violation(s)")
            all_violations.extend(violations)
        else:
            print("✅")

    if all_violations:
        print(format_violations(all_violations))
        print(f"\n❌ FAILED: {len(all_violations)} boundary violation(s) found")
        return 1

    print("\n✅ All boundary checks passed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
