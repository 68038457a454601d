# tests/test_envfile.py
from __future__ import annotations

import pytest

from stringr.envfile import parse_env_file, parse_env_string
from stringr.errors import EnvFileError


def test_basic_parsing():
    text = """
# build settings
MODE=release
  PADDED =  value with spaces  
EMPTY=
URL=http://host/?a=b
MODE=debug
"""
    assert parse_env_string(text) == {
        "MODE": "debug",
        "PADDED": "value with spaces",
        "EMPTY": "",
        "URL": "http://host/?a=b",
    }


def test_crlf_lines():
    assert parse_env_string("A=1\r\nB=2\r\n") == {"A": "1", "B": "2"}


@pytest.mark.parametrize(
    "text, kind",
    [
        ("JUSTAKEY", "MissingEquals"),
        ("=value", "EmptyKey"),
        ("BAD-KEY=1", "InvalidFormat"),
        ("KEY\t\u00e9=1", "InvalidFormat"),
        ("export A=1", "InvalidFormat"),
    ],
)
def test_errors(text, kind):
    with pytest.raises(EnvFileError) as exc:
        parse_env_string(text)
    assert exc.value.kind == kind


def test_error_reports_line():
    with pytest.raises(EnvFileError) as exc:
        parse_env_string("A=1\n\nbroken\n")
    assert exc.value.details["line"] == 3


def test_parse_env_file(tmp_path):
    path = tmp_path / ".env"
    path.write_text("TOKEN=abc\n")
    assert parse_env_file(path) == {"TOKEN": "abc"}


def test_missing_env_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_env_file(tmp_path / "missing.env")
