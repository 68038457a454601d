from __future__ import annotations
import os

SHELL = os.environ.get("STRINGR_SHELL", "sh")
TOOLCHAIN = os.environ.get("STRINGR_TOOLCHAIN", "zig")
CACHE_DIR = os.environ.get("STRINGR_CACHE_DIR", os.path.join(os.path.expanduser("~"), ".cache", "stringr"))
LOG_DIR = os.environ.get("STRINGR_LOG_DIR") or None
MAX_WORKERS = int(os.environ["STRINGR_MAX_WORKERS"]) if os.environ.get("STRINGR_MAX_WORKERS") else None
