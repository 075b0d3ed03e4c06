#!/usr/bin/env python3
"""
vidconv Test Runner

Usage:
    python test.py            # Run all tests
    python test.py quick      # Skip slow tests (SIGKILL escalation waits)
    python test.py unit       # Skip tests that spawn the fake ffmpeg
    python test.py ffmpeg     # Only tests that need a real ffmpeg on PATH
    python test.py coverage   # Run with coverage report (needs pytest-cov)
    python test.py failed     # Re-run the last failures
    python test.py <module>   # tests/test_<module>.py, or a -k filter
"""

import os
import subprocess
import sys

MODES = {
    "quick": (["-m", "not slow"], "[QUICK] Skipping slow tests..."),
    "unit": (["-m", "not integration and not slow"], "[UNIT] Skipping subprocess integration tests..."),
    "ffmpeg": (["-m", "requires_ffmpeg", "-rs"], "[FFMPEG] Running tests against the local ffmpeg..."),
    "coverage": (
        ["--cov=vidconv", "--cov-report=term-missing", "--cov-report=html:coverage_html"],
        "[COVERAGE] Running tests with coverage report...",
    ),
    "failed": (["--lf"], "[RETRY] Re-running failed tests..."),
}


def build_command(args):
    cmd = [sys.executable, "-m", "pytest", "-v", "--tb=short"]

    if not args:
        print("[TEST] Running all tests...\n")
        return cmd + ["tests/"]

    mode = args[0]
    if mode in MODES:
        extra, banner = MODES[mode]
        print(f"{banner}\n")
        return cmd + extra + ["tests/"]

    test_file = f"tests/test_{mode}.py"
    if os.path.exists(test_file):
        print(f"[MODULE] Running {test_file}...\n")
        return cmd + [test_file]

    print(f"[FILTER] Running tests matching '{mode}'...\n")
    return cmd + ["tests/", "-k", mode]


def main():
    os.chdir(os.path.dirname(os.path.abspath(__file__)))
    cmd = build_command(sys.argv[1:])

    try:
        result = subprocess.run(cmd)
    except KeyboardInterrupt:
        print("\n\n[ABORT] Tests interrupted by user")
        return 1

    print("\n" + "=" * 60)
    if result.returncode == 0:
        print("[PASS] All tests passed!")
    else:
        print(f"[FAIL] Tests failed (exit code: {result.returncode})")
    print("=" * 60)
    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
