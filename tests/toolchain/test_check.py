import shutil
from pathlib import Path

import pytest

from mcp_rpkg_dev.errors import ExternalToolFailure
from mcp_rpkg_dev.toolchain import build as build_module
from mcp_rpkg_dev.toolchain import check as check_module
from mcp_rpkg_dev.toolchain.build import build
from mcp_rpkg_dev.toolchain.check import (
    check,
    check_env,
    cran_env,
    package_name_from_tarball,
    parse_check_output,
)
from mcp_rpkg_dev.toolchain.check_man import (
    NOT_IN_USAGE,
    UNDOCUMENTED,
    check_man,
    format_problems,
)
from mcp_rpkg_dev.types import ProcessResult, Severity

requires_r = pytest.mark.skipif(shutil.which("R") is None, reason="R is not installed")

CLEAN_OUTPUT = """\
* using log directory '/tmp/namespace.Rcheck'
* checking for file 'namespace/DESCRIPTION' ... OK
* checking R code for possible problems ... OK
Status: OK
"""

NOTE_OUTPUT = """\
* checking CRAN incoming feasibility ... NOTE
Maintainer: 'Someone <someone@example.com>'
* checking top-level files ... WARNING
Non-standard file found
* checking examples ... ERROR
Running examples in 'namespace-Ex.R' failed
Status: 1 ERROR, 1 WARNING, 1 NOTE
"""


class FakeR:
    """Stands in for R: writes what R CMD build and check would leave behind."""

    def __init__(self, check_output=CLEAN_OUTPUT, fail_check=False):
        self.calls = []
        self.check_output = check_output
        self.fail_check = fail_check

    async def __call__(self, args, cwd=None, env_vars=None, settings=None):
        self.calls.append((list(args), cwd, dict(env_vars or {})))
        if args[:2] == ["CMD", "build"]:
            pkg_dir = Path(args[-1])
            fields = dict(
                line.split(": ", 1)
                for line in (pkg_dir / "DESCRIPTION").read_text().splitlines()
                if ": " in line
            )
            (cwd / f"{fields['Package']}_{fields['Version']}.tar.gz").write_bytes(b"")
            return ProcessResult(0, "* building package\n", "")
        if args[:2] == ["CMD", "check"]:
            name = package_name_from_tarball(Path(args[2]))
            (cwd / f"{name}.Rcheck").mkdir(exist_ok=True)
            if self.fail_check:
                raise ExternalToolFailure("R CMD check failed", returncode=1, stdout=self.check_output)
            return ProcessResult(0, self.check_output, "")
        raise AssertionError(f"unexpected R call {args}")


@pytest.fixture
def fake_r(monkeypatch):
    def _install(**kwargs):
        fake = FakeR(**kwargs)
        monkeypatch.setattr(build_module, "run_r", fake)
        monkeypatch.setattr(check_module, "run_r", fake)
        return fake
    return _install


def test_cran_env():
    env = cran_env()
    assert env["_R_CHECK_TIMINGS_"] == "10"
    assert len(env) == 7
    assert "_R_CHECK_CRAN_INCOMING_" not in env


def test_check_env():
    assert check_env(cran=False) == {}
    assert check_env(cran=False, check_version=True) == {"_R_CHECK_CRAN_INCOMING_": "TRUE"}
    assert check_env(cran=True, check_version=True)["_R_CHECK_VC_DIRS_"] == "TRUE"


def test_package_name_from_tarball():
    assert package_name_from_tarball(Path("/tmp/my.pkg_1.0-2.tar.gz")) == "my.pkg"


def test_parse_check_output():
    assert parse_check_output(CLEAN_OUTPUT) == []

    markers = parse_check_output(NOTE_OUTPUT)
    assert [m.severity for m in markers] == [Severity.NOTE, Severity.WARNING, Severity.ERROR]
    assert markers[2].check == "checking examples"


def test_check_man_reports_mismatches(fixture_path):
    problems = check_man(fixture_path / "baddoc")

    assert [(p.message, p.arguments) for p in problems] == [
        (UNDOCUMENTED, ("x",)),
        (NOT_IN_USAGE, ("foo",)),
    ]
    assert problems[0].topic == "foo"


def test_check_man_clean_package(fixture_path):
    assert check_man(fixture_path / "namespace") == []


def test_format_problems(fixture_path):
    text = format_problems(check_man(fixture_path / "baddoc"))
    assert text.splitlines() == [
        "Undocumented arguments in documentation object 'foo':",
        "  ‘x’",
        "Documented arguments not in \\usage in documentation object 'foo':",
        "  ‘foo’",
    ]


@pytest.mark.asyncio
async def test_build_returns_tarball(fixture_path, settings, fake_r, tmp_path):
    fake = fake_r()
    built = await build(fixture_path / "namespace", tmp_path / "out", settings)

    assert built == tmp_path / "out" / "namespace_0.1.tar.gz"
    args, cwd, _ = fake.calls[0]
    assert args[:4] == ["CMD", "build", "--no-manual", "--no-resave-data"]
    assert cwd == tmp_path / "out"


@pytest.mark.asyncio
async def test_build_without_artifact(fixture_path, settings, monkeypatch, tmp_path):
    async def silent_r(args, cwd=None, env_vars=None, settings=None):
        return ProcessResult(0, "", "")

    monkeypatch.setattr(build_module, "run_r", silent_r)
    with pytest.raises(ExternalToolFailure, match="did not produce"):
        await build(fixture_path / "namespace", tmp_path / "out", settings)


@pytest.mark.asyncio
async def test_check_success_cleans_up(fixture_path, settings, fake_r):
    fake = fake_r()
    result = await check(fixture_path / "namespace", settings=settings)

    assert result.success
    assert result.package == "namespace"
    assert not result.kept
    assert not result.check_dir.exists()
    assert result.check_dir == settings.temp_root / "namespace.Rcheck"

    check_args, cwd, env_vars = fake.calls[1]
    assert check_args[:2] == ["CMD", "check"]
    assert check_args[2].endswith("namespace_0.1.tar.gz")
    assert "--timings" in check_args
    assert cwd == settings.temp_root
    assert env_vars == cran_env()

    # the build sandbox is gone
    assert list(settings.temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_check_without_cleanup_keeps_results(fixture_path, settings, fake_r):
    fake_r()
    result = await check(fixture_path / "namespace", cleanup=False, settings=settings)

    assert result.success
    assert result.kept
    assert result.check_dir.is_dir()


@pytest.mark.asyncio
async def test_check_options_passed_through(fixture_path, settings, fake_r):
    fake = fake_r()
    await check(
        fixture_path / "namespace",
        cran=False,
        check_version=True,
        args=["--no-tests"],
        settings=settings,
    )

    check_args, _, env_vars = fake.calls[1]
    assert check_args[-1] == "--no-tests"
    assert env_vars == {"_R_CHECK_CRAN_INCOMING_": "TRUE"}


@pytest.mark.asyncio
async def test_check_error_marker_keeps_results(fixture_path, settings, fake_r):
    fake_r(check_output=NOTE_OUTPUT)
    result = await check(fixture_path / "namespace", settings=settings)

    assert not result.success
    assert result.kept
    assert result.check_dir.is_dir()
    assert result.count(Severity.ERROR) == 1
    assert result.count(Severity.NOTE) == 1


@pytest.mark.asyncio
async def test_check_non_zero_exit_reported(fixture_path, settings, fake_r):
    fake_r(check_output=NOTE_OUTPUT, fail_check=True)
    result = await check(fixture_path / "namespace", settings=settings)

    assert not result.success
    assert result.kept
    assert "checking examples ... ERROR" in result.output
    assert result.count(Severity.ERROR) == 1
    assert (settings.temp_root / "namespace.Rcheck").is_dir()


@pytest.mark.asyncio
async def test_check_non_zero_exit_without_markers(fixture_path, settings, fake_r):
    fake_r(check_output="Error: cannot open tarball\n", fail_check=True)
    result = await check(fixture_path / "namespace", settings=settings)

    assert not result.success
    assert result.markers == []
    assert result.output == "Error: cannot open tarball\n"


@pytest.mark.asyncio
async def test_check_reports_doc_problems(fixture_path, settings, fake_r):
    fake_r()
    result = await check(fixture_path / "baddoc", settings=settings)

    assert len(result.doc_problems) == 2
    assert result.output.startswith("* checking Rd \\usage sections ... WARNING\nUndocumented arguments")
    assert [(m.severity, m.check) for m in result.markers] == [
        (Severity.WARNING, "checking Rd \\usage sections")
    ]
    assert result.success


@pytest.mark.asyncio
async def test_check_without_document_skips_doc_check(fixture_path, settings, fake_r):
    fake_r()
    result = await check(fixture_path / "baddoc", document=False, settings=settings)

    assert result.doc_problems == []
    assert result.output == CLEAN_OUTPUT


@requires_r
@pytest.mark.asyncio
async def test_check_with_r(r_package, settings):
    result = await check(
        r_package("namespace"), cran=False, args=["--no-manual"], settings=settings
    )

    assert result.package == "namespace"
    assert "checking" in result.output
