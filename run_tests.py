#!/usr/bin/env python
"""Test runner script for IDE integration

Usage: run_tests.py [unit|integration] [pytest args...]
"""

import subprocess
import sys

SUITES = {"unit": "tests/unit/", "integration": "tests/integration/"}

args = sys.argv[1:]
if args and args[0] in SUITES:
    args = [SUITES[args[0]], *args[1:]]

# Run all tests verbosely when nothing was given
if not args:
    args = ["tests/", "-v"]

result = subprocess.run([sys.executable, "-m", "pytest"] + args)

# Exit with the same code as pytest
sys.exit(result.returncode)
