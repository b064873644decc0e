"""
Tests for functionspine.loader — loading function sources by path or module.
"""

from __future__ import annotations

import pytest

from functionspine import SourceLoadError, get_default_registry
from functionspine.loader import load_source


class TestLoadSource:
    def test_file_registers_functions(self, tmp_path):
        (tmp_path / "helpers.py").write_text("GREETING = 'hi'\n")
        source = tmp_path / "main.py"
        source.write_text(
            "import functionspine\n"
            "from helpers import GREETING\n"
            "\n"
            "@functionspine.http('greet')\n"
            "def greet(request):\n"
            "    return GREETING\n"
        )
        load_source(str(source))
        assert "greet" in get_default_registry()

    def test_dotted_module(self):
        module = load_source("functionspine.settings")
        assert module.DEFAULT_TARGET == "function"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceLoadError):
            load_source(str(tmp_path / "missing.py"))

    def test_unknown_module(self):
        with pytest.raises(SourceLoadError) as exc_info:
            load_source("no_such_package_here")
        assert isinstance(exc_info.value.cause, ImportError)

    def test_import_error_in_source(self, tmp_path):
        source = tmp_path / "main.py"
        source.write_text("1 / 0\n")
        with pytest.raises(SourceLoadError) as exc_info:
            load_source(str(source))
        assert isinstance(exc_info.value.cause, ZeroDivisionError)
