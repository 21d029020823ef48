import shutil
from pathlib import Path

import pytest

from mcp_rpkg_dev.config import Settings
from mcp_rpkg_dev.namespaces.manager import EnvironmentManager
from mcp_rpkg_dev.sandboxes.sandbox import create_sandbox, cleanup_sandbox

FIXTURES = Path(__file__).parent.parent / "fixtures_data" / "r"


@pytest.fixture
def fixture_path() -> Path:
    """Directory holding the R package fixtures"""
    return FIXTURES


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to the test's temporary directory"""
    library = tmp_path / "library"
    temp_root = tmp_path / "tmp"
    library.mkdir()
    temp_root.mkdir()
    return Settings(
        r_binary="R",
        rscript_binary="Rscript",
        git_binary=None,
        library=library,
        lib_paths=(library,),
        temp_root=temp_root,
        log_level="DEBUG",
    )


@pytest.fixture
def r_package(tmp_path: Path):
    """Copy a fixture package into the test's temporary directory"""
    def _copy(name: str) -> Path:
        dest = tmp_path / "pkgs" / name
        shutil.copytree(FIXTURES / name, dest)
        return dest
    return _copy


@pytest.fixture
def manager() -> EnvironmentManager:
    """A fresh environment manager per test"""
    return EnvironmentManager()


@pytest.fixture
def sandbox(tmp_path: Path):
    """Create a real temporary sandbox for testing"""
    sandbox = create_sandbox("test-", tmp_path)
    try:
        yield sandbox
    finally:
        cleanup_sandbox(sandbox)
