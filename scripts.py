#!/usr/bin/env python3
"""
Development scripts for the keystone project.

Every check runs through uv so the locked dev environment is used.
"""

import subprocess
import sys
from pathlib import Path

PACKAGE = "src/keystone/"

CHECKS: dict[str, list[tuple[list[str], str]]] = {
    "test": [
        (["uv", "run", "pytest", "-v"], "Tests"),
    ],
    "lint": [
        (["uv", "run", "ruff", "check", "."], "Ruff linting"),
        (["uv", "run", "ruff", "format", "--check", "."], "Ruff formatting"),
    ],
    "typecheck": [
        (["uv", "run", "mypy", PACKAGE], "MyPy type checking"),
        (["uv", "run", "pyright", PACKAGE], "Pyright type checking"),
    ],
}


def run_command(cmd: list[str], description: str) -> bool:
    """Run a command and return True if successful."""
    print(f"\n🔄 {description}...")
    print(f"Running: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, check=True, capture_output=False)
    except subprocess.CalledProcessError as e:
        print(f"❌ {description} failed with exit code {e.returncode}")
        return False
    except FileNotFoundError:
        print(f"❌ Command not found: {cmd[0]}")
        return False
    print(f"✅ {description} passed")
    return True


def run_group(name: str) -> int:
    """Run every command of a named check group, without stopping at the first failure."""
    results = [run_command(cmd, desc) for cmd, desc in CHECKS[name]]
    if name == "lint" and not all(results):
        print("\n💡 To auto-fix formatting issues, run: uv run ruff format .")
    return 0 if all(results) else 1


def run_demos() -> int:
    """Run every demo script; each must exit cleanly."""
    demo_files = sorted(p for p in Path("demo").glob("*.py") if not p.name.startswith("_"))
    if not demo_files:
        print("⚠️  No demo files found in demo directory")
        return 0

    results = [run_command(["uv", "run", "python", str(p)], f"Demo: {p.name}") for p in demo_files]
    return 0 if all(results) else 1


def check_all() -> int:
    """Run tests, linting, type checking and demos, then print a summary."""
    print("🚀 Running all checks for keystone")
    print("=" * 50)

    steps = {name: (lambda n=name: run_group(n)) for name in CHECKS}
    steps["demos"] = run_demos
    results = {name: step() == 0 for name, step in steps.items()}

    print(f"\n{'=' * 20} SUMMARY {'=' * 20}")
    for name, passed in results.items():
        print(f"{name:<15} {'✅ PASS' if passed else '❌ FAIL'}")

    if all(results.values()):
        print("\n🎉 All checks passed!")
        return 0
    print("\n💥 Some checks failed. Please fix the issues above.")
    return 1


if __name__ == "__main__":
    commands = [*CHECKS, "demos", "check"]
    if len(sys.argv) != 2 or sys.argv[1] not in commands:
        print(f"Available commands: {', '.join(commands)}")
        print("Usage: python scripts.py <command>")
        sys.exit(1)

    command = sys.argv[1]
    if command == "check":
        sys.exit(check_all())
    if command == "demos":
        sys.exit(run_demos())
    sys.exit(run_group(command))
