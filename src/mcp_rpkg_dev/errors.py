"""Error handling for the package development server."""
from typing import Any, Dict, Optional

from mcp.types import (
    ErrorData,
    INVALID_REQUEST,
    INVALID_PARAMS,
    INTERNAL_ERROR,
)

from mcp_rpkg_dev.logging import get_logger

logger = get_logger(__name__)


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    logger=None,
) -> None:
    """Log an error with context."""
    logger = logger or get_logger(__name__)

    error_info: Dict[str, Any] = {
        "error_type": error.__class__.__name__,
        "error_message": str(error),
    }
    if context:
        error_info["context"] = context
    if isinstance(error, DevToolsError):
        error_info["code"] = error.code
        error_info["details"] = error.details

    logger.error("operation_failed", **error_info)


class DevToolsError(Exception):
    """Base error class for package development operations."""
    def __init__(
        self,
        message: str,
        code: int = INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_error_data(self) -> ErrorData:
        """Convert to ErrorData format."""
        return ErrorData(
            code=self.code,
            message=str(self),
            data=self.details
        )


class ExecutableNotFound(DevToolsError):
    """External tool could not be resolved."""
    def __init__(self, executable: str, message: Optional[str] = None):
        super().__init__(
            message or f"Executable {executable} not found",
            code=INVALID_REQUEST,
            details={"executable": executable}
        )


class ExternalToolFailure(DevToolsError):
    """External tool exited with a non-zero status."""
    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(
            message,
            code=INTERNAL_ERROR,
            details={"returncode": returncode, "stdout": stdout, "stderr": stderr}
        )
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class MissingDescriptor(DevToolsError):
    """Package lacks dependency or export metadata."""
    def __init__(self, package: str, message: str):
        super().__init__(
            message,
            code=INVALID_PARAMS,
            details={"package": package}
        )


class NotAPackage(DevToolsError):
    """Directory has no DESCRIPTION file."""
    def __init__(self, path: str):
        super().__init__(
            f"Does not appear to be an R package: {path}",
            code=INVALID_PARAMS,
            details={"path": path}
        )


class StateConflict(DevToolsError):
    """Unit is already in the middle of a load."""
    def __init__(self, unit: str):
        super().__init__(
            f"Package {unit} is already being loaded",
            code=INVALID_REQUEST,
            details={"unit": unit}
        )


class TopicNotFound(DevToolsError):
    """No loaded package documents the requested topic."""
    def __init__(self, topic: str):
        super().__init__(
            f"Can't find development example for topic {topic}",
            code=INVALID_PARAMS,
            details={"topic": topic}
        )
