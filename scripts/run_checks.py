#!/usr/bin/env python3
"""Run repository checks: ruff, pyright, and the test suite.

Exits non-zero on the first failing step so CI can observe status.
``--native-dir`` points the bridge at a locally built engine library for the
test run (it sets IMAGE_BRIDGE_LIBRARY_DIR).
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys


def run(cmd: list[str], env: dict[str, str] | None = None) -> int:
    print("=>", " ".join(cmd))
    res = subprocess.run(cmd, check=False, env=env)
    return res.returncode


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--no-tests", action="store_true", help="Skip running pytest")
    parser.add_argument("--fix", action="store_true", help="Let ruff apply fixes")
    parser.add_argument("--native-dir", help="Directory holding the native engine library")
    parser.add_argument("pytest_args", nargs="*", help="Extra arguments passed to pytest")
    args = parser.parse_args()

    ruff = [sys.executable, "-m", "ruff", "check", "image_bridge", "tests", "scripts"]
    if args.fix:
        ruff.append("--fix")
    rc = run(ruff)
    if rc != 0:
        print("ruff failed")
        return rc

    # pyright is usually a node shim on PATH on Windows
    rc = run([sys.executable, "-m", "pyright"]) if sys.platform != "win32" else run(["pyright"])
    if rc != 0:
        print("pyright failed")
        return rc

    if not args.no_tests:
        env = dict(os.environ)
        if args.native_dir:
            env["IMAGE_BRIDGE_LIBRARY_DIR"] = os.path.abspath(args.native_dir)
        rc = run([sys.executable, "-m", "pytest", "-q", *args.pytest_args], env=env)
        if rc != 0:
            print("pytest failed")
            return rc

    print("All checks passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
