"""Tests for the CLI."""

import pytest
from typer.testing import CliRunner

from pharout import __version__
from pharout.cli import app
from pharout.config import AUTOLOADER_FILES
from pharout.phar import read_phar


runner = CliRunner()


@pytest.fixture
def project(tmp_path):
    """Create a minimal Composer project."""
    root = tmp_path / "tool"
    (root / "bin").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "vendor" / "composer").mkdir(parents=True)

    (root / "bin" / "tool").write_text("#!/usr/bin/env php\n<?php\nrun();\n")
    (root / "src" / "Tool.php").write_text("<?php\n// Tool\nclass Tool {}\n")
    for loader_file in AUTOLOADER_FILES:
        (root / loader_file).write_text("<?php\n")

    return root


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_build_from_options(project) -> None:
    result = runner.invoke(
        app,
        ["build", "-p", str(project), "-b", "bin/tool", "-s", "src", "-o", "tool.phar"],
    )

    assert result.exit_code == 0, result.output
    assert "Adding src/Tool.php..." in result.output
    assert "Build complete!" in result.output

    phar = read_phar(project / "tool.phar")
    assert list(phar.entries) == ["src/Tool.php", *AUTOLOADER_FILES, "bin/tool"]


def test_build_from_config_file(project) -> None:
    (project / "pharout.toml").write_text(
        '[pharout]\nexecutable = "bin/tool"\noutput = "build/tool.phar"\nsources = ["src"]\n'
    )

    result = runner.invoke(app, ["build", "-p", str(project)])

    assert result.exit_code == 0, result.output
    assert "Using config:" in result.output
    assert "src/Tool.php" in read_phar(project / "build" / "tool.phar").entries


def test_cli_output_overrides_config(project) -> None:
    (project / "pharout.toml").write_text(
        '[pharout]\nexecutable = "bin/tool"\noutput = "build/tool.phar"\n'
    )

    result = runner.invoke(app, ["build", "-p", str(project), "-o", "other.phar"])

    assert result.exit_code == 0, result.output
    assert (project / "other.phar").is_file()
    assert not (project / "build" / "tool.phar").exists()


def test_build_requires_bin(project) -> None:
    result = runner.invoke(app, ["build", "-p", str(project), "-o", "tool.phar"])

    assert result.exit_code == 1
    assert "--bin must be specified" in result.output


def test_build_requires_output(project) -> None:
    result = runner.invoke(app, ["build", "-p", str(project), "-b", "bin/tool"])

    assert result.exit_code == 1
    assert "--output must be specified" in result.output


def test_build_failure_exits_1(project) -> None:
    result = runner.invoke(
        app,
        ["build", "-p", str(project), "-b", "bin/missing", "-o", "tool.phar"],
    )

    assert result.exit_code == 1
    assert "Failed to compile phar" in result.output


def test_invalid_config_file(project) -> None:
    (project / "pharout.toml").write_text("sources = [1]\n")

    result = runner.invoke(app, ["build", "-p", str(project)])

    assert result.exit_code == 1
    assert "Invalid source entry" in result.output


def test_inspect(project) -> None:
    runner.invoke(app, ["build", "-p", str(project), "-b", "bin/tool", "-o", "tool.phar"])

    result = runner.invoke(app, ["inspect", str(project / "tool.phar"), "--stub"])

    assert result.exit_code == 0, result.output
    assert "tool.phar" in result.output
    assert "(verified)" in result.output
    assert "__HALT_COMPILER();" in result.output


def test_inspect_rejects_non_phar(tmp_path) -> None:
    path = tmp_path / "plain.txt"
    path.write_text("hello")

    result = runner.invoke(app, ["inspect", str(path)])

    assert result.exit_code == 1
    assert "Not a phar archive" in result.output
