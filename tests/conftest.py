from __future__ import annotations

import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
SRC = BASE_DIR / "src"
TESTS_DIR = Path(__file__).resolve().parent

for path in (SRC, TESTS_DIR):
    sys.path.insert(0, str(path))
