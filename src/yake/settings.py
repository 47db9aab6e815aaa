# settings.py
from __future__ import annotations

import os

YAKEFILE = os.environ.get("YAKE_FILE", "Yakefile")
SHELL = os.environ.get("YAKE_SHELL", "bash")
WORKERS = int(os.environ.get("YAKE_WORKERS", "1"))

# Overlay keys that would break the step subprocess (path expansion,
# terminal handling) if a Yakefile replaced them.
FORBIDDEN_ENV = ("TERM", "TZ", "LANG", "PATH", "HOME")

# Tail of captured step output kept on an ExecutionError.
OUTPUT_TAIL = 4000
