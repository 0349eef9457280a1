# Test file for the command-line interface

import pytest
from click.testing import CliRunner
from campack import __version__
from campack.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def root(tmp_path):
    """Storage root used by every invocation"""
    return str(tmp_path / "store")


def invoke(runner, root, *args):
    return runner.invoke(cli, ["--root", root, *[str(arg) for arg in args]])


def test_version(runner):
    """Test the version flag"""
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_install_list_and_remove_component(runner, root, make_component):
    """Test the component lifecycle"""
    result = invoke(runner, root, "install", make_component("plot", "1.0.0"))
    assert result.exit_code == 0, result.output
    assert "plot@1.0.0" in result.output

    result = invoke(runner, root, "list")
    assert result.exit_code == 0
    assert "plot" in result.output

    result = invoke(runner, root, "show", "plot")
    assert result.exit_code == 0
    assert "Plot" in result.output

    result = invoke(runner, root, "rm", "plot")
    assert result.exit_code == 0
    assert "plot@1.0.0" in result.output

    result = invoke(runner, root, "ls")
    assert "Nothing installed" in result.output


def test_install_package_and_dedupe(runner, root, make_component, make_package):
    """Test the package lifecycle"""
    component = make_component("A", "1.0.0")
    first = make_package("P", "1.0.0", includes=[{"cond": "A", "ref": str(component)}])
    second = make_package("P", "2.0.0", includes=["com/A"])

    assert invoke(runner, root, "install", first).exit_code == 0
    assert invoke(runner, root, "install", second).exit_code == 0

    result = invoke(runner, root, "list", "--packages")
    assert "pkg/P@1.0.0" in result.output
    assert "pkg/P@2.0.0" in result.output

    result = invoke(runner, root, "dedupe", "P")
    assert result.exit_code == 0
    assert "1 co-existing version removed" in result.output

    result = invoke(runner, root, "show", "P", "--package")
    assert result.exit_code == 0
    assert "com/A@1.0.0" in result.output


def test_compile_and_compat(runner, root, make_component, tmp_path):
    """Test compiling and compatibility lookups"""
    invoke(runner, root, "install", make_component("A", "1.0.0"))
    invoke(runner, root, "install", make_component("A", "2.0.0"))

    result = invoke(runner, root, "compat", "A@1.5.0")
    assert result.exit_code == 0
    assert "com/A@1.0.0" in result.output

    result = invoke(runner, root, "compile", "A", tmp_path / "out")
    assert result.exit_code == 0
    assert (tmp_path / "out" / "A.v2.0.0.zip").is_file()


def test_clean(runner, root, make_component):
    """Test sweeping isolated components"""
    invoke(runner, root, "install", make_component("A", "1.0.0"))

    result = invoke(runner, root, "clean")
    assert result.exit_code == 0
    assert "com/A@1.0.0" in result.output
    assert "Nothing to clean" in invoke(runner, root, "clean").output


def test_errors_are_reported(runner, root, tmp_path):
    """Test that failures print an error and exit with 1"""
    bad = tmp_path / "bad.json"
    bad.write_text('{"type": "component", "id": "x"}', encoding="utf-8")

    result = invoke(runner, root, "install", bad)
    assert result.exit_code == 1
    assert "cannot be empty" in result.output

    result = invoke(runner, root, "compile", "missing", tmp_path)
    assert result.exit_code == 1
