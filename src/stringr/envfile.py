# envfile.py
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict

from .errors import EnvFileError

_KEY_RE = re.compile(r"[A-Za-z0-9_]+")


def parse_env_string(content: str) -> Dict[str, str]:
    """
    Parse `.env` text: one KEY=VALUE per line.

    Blank lines and lines starting with '#' are skipped. Key and value are
    trimmed; an empty value is allowed; a later duplicate key wins. No quote
    handling or interpolation.
    """
    env: Dict[str, str] = {}
    for lineno, raw in enumerate(content.split("\n"), start=1):
        line = raw.strip(" \t\r")
        if not line or line.startswith("#"):
            continue

        key, sep, value = line.partition("=")
        if not sep:
            raise EnvFileError(
                kind="MissingEquals",
                message=f"line {lineno}: expected KEY=VALUE",
                details={"line": lineno},
            )
        key = key.strip(" \t")
        if not key:
            raise EnvFileError(
                kind="EmptyKey",
                message=f"line {lineno}: empty key",
                details={"line": lineno},
            )
        if not _KEY_RE.fullmatch(key):
            raise EnvFileError(
                kind="InvalidFormat",
                message=f"line {lineno}: invalid key '{key}' (letters, digits and '_' only)",
                details={"line": lineno, "key": key},
            )
        env[key] = value.strip(" \t")
    return env


def parse_env_file(path: str | Path) -> Dict[str, str]:
    env_path = Path(path).expanduser()
    if not env_path.exists():
        raise FileNotFoundError(f"Env file not found: {env_path}")
    return parse_env_string(env_path.read_text(encoding="utf-8"))
