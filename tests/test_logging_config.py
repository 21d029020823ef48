import json
import logging
import os
from pathlib import Path

import pytest
import structlog
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS

from mcp_rpkg_dev.config import BASE_PACKAGES, get_settings
from mcp_rpkg_dev.errors import (
    DevToolsError,
    ExternalToolFailure,
    MissingDescriptor,
    log_error,
)
from mcp_rpkg_dev.logging import (
    CompactJSONRenderer,
    add_timestamp,
    configure_logging,
    get_logger,
    rename_caller_info,
)

ENV_VARS = (
    "RPKG_DEV_R",
    "RPKG_DEV_RSCRIPT",
    "RPKG_DEV_GIT",
    "RPKG_DEV_LIBRARY",
    "RPKG_DEV_LIB_PATHS",
    "RPKG_DEV_TMPDIR",
    "RPKG_DEV_LOG_LEVEL",
    "R_LIBS",
    "R_LIBS_USER",
)


@pytest.fixture
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_compact_json_renderer():
    event = {
        "event": "package_loaded",
        "level": "info",
        "timestamp": "2024-01-01T00:00:00+00:00",
        "module": "load_all",
        "line": 12,
        "package": "namespace",
    }
    data = json.loads(CompactJSONRenderer()(None, "info", event))

    assert data == {
        "ts": "2024-01-01T00:00:00+00:00",
        "lvl": "info",
        "msg": "package_loaded",
        "module": "load_all",
        "line": 12,
        "data": {"package": "namespace"},
    }


def test_compact_json_renderer_without_data():
    data = json.loads(CompactJSONRenderer()(None, "info", {"event": "ready"}))
    assert "data" not in data
    assert data["lvl"] == "???"


def test_compact_json_renderer_handles_paths():
    output = CompactJSONRenderer()(None, "info", {"event": "x", "path": Path("/tmp/pkg")})
    assert json.loads(output)["data"]["path"] == "/tmp/pkg"


def test_rename_caller_info():
    event = rename_caller_info(None, None, {"func_name": "f", "lineno": 3, "filename": "a.py"})
    assert event == {"module": "f", "line": 3, "file": "a.py"}


def test_add_timestamp_keeps_existing():
    assert add_timestamp(None, None, {"timestamp": "then"}) == {"timestamp": "then"}
    assert "timestamp" in add_timestamp(None, None, {})


def test_configure_logging_sets_level():
    configure_logging("debug")
    try:
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("mcp.server.stdio").level == logging.WARNING
        get_logger("test").debug("configured", value=1)
    finally:
        configure_logging("INFO")
        structlog.reset_defaults()


def test_settings_defaults(clean_env):
    settings = get_settings()

    assert settings.r_binary == "R"
    assert settings.rscript_binary == "Rscript"
    assert settings.git_binary is None
    assert settings.library.name == "library"
    assert settings.lib_paths == (settings.library,)
    assert settings.log_level == "INFO"


def test_settings_from_environment(clean_env, tmp_path):
    clean_env.setenv("RPKG_DEV_R", "/opt/R/bin/R")
    clean_env.setenv("RPKG_DEV_GIT", "/usr/local/bin/git")
    clean_env.setenv("RPKG_DEV_LIBRARY", str(tmp_path / "lib"))
    clean_env.setenv("R_LIBS", os.pathsep.join([str(tmp_path / "a"), str(tmp_path / "lib")]))
    clean_env.setenv("RPKG_DEV_TMPDIR", str(tmp_path))
    clean_env.setenv("RPKG_DEV_LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.r_binary == "/opt/R/bin/R"
    assert settings.git_binary == "/usr/local/bin/git"
    assert settings.library == tmp_path / "lib"
    assert settings.lib_paths == (tmp_path / "lib", tmp_path / "a")
    assert settings.temp_root == tmp_path
    assert settings.log_level == "DEBUG"


def test_base_packages():
    assert {"base", "compiler", "utils"} <= BASE_PACKAGES


def test_error_data():
    error = MissingDescriptor("pkg", "no NAMESPACE")
    data = error.to_error_data()

    assert data.code == INVALID_PARAMS
    assert data.message == "no NAMESPACE"
    assert data.data == {"package": "pkg"}
    assert DevToolsError("x").code == INTERNAL_ERROR


def test_external_tool_failure_output():
    error = ExternalToolFailure("failed", returncode=2, stdout="out", stderr="err")
    assert error.output == "out\nerr"
    assert ExternalToolFailure("failed", stderr="err").output == "err"
    assert error.details["returncode"] == 2


def test_log_error_includes_details():
    events = []

    class Recorder:
        def error(self, event, **kwargs):
            events.append((event, kwargs))

    log_error(MissingDescriptor("pkg", "broken"), {"tool": "rpkg_load"}, Recorder())

    event, info = events[0]
    assert event == "operation_failed"
    assert info["error_type"] == "MissingDescriptor"
    assert info["context"] == {"tool": "rpkg_load"}
    assert info["details"] == {"package": "pkg"}
