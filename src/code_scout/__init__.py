"""code-scout: read-only, tool-using LLM analysis of a local codebase."""

from importlib.metadata import version

__version__ = version("code-scout")

from code_scout.config import ScoutConfig, ToolLimits, load_config  # noqa: E402
from code_scout.core.cancellation import CancellationToken  # noqa: E402
from code_scout.errors import (  # noqa: E402
    AnalysisError,
    AnalysisTimeoutError,
    ClosedSessionError,
    ConfigError,
    ScoutError,
    ValidationError,
)
from code_scout.session import AnalysisResult, AnalysisSession  # noqa: E402

__all__ = [
    "__version__",
    "ScoutConfig", "ToolLimits", "load_config",
    "CancellationToken",
    "AnalysisSession", "AnalysisResult",
    "ScoutError", "ConfigError", "ValidationError", "ClosedSessionError",
    "AnalysisError", "AnalysisTimeoutError",
]
