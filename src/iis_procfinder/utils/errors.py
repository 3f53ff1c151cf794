"""
Error handling framework for iis-procfinder.

This module provides:
- Hierarchical exception classes
- Error context preservation
- User-facing resolution suggestions
- Structured error responses
"""

from typing import Optional, Dict, Any, List, Type, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import traceback
from contextlib import contextmanager
import functools

from .logging import get_logger


logger = get_logger("iis-procfinder.errors")


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    CONFIGURATION = "configuration"
    ENUMERATION = "enumeration"
    EXTERNAL_TOOL = "external_tool"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None


@dataclass
class ErrorInfo:
    """Structured error information."""
    code: str
    message: str
    severity: ErrorSeverity
    category: ErrorCategory
    context: ErrorContext
    cause: Optional[Exception] = None
    suggestions: List[str] = field(default_factory=list)


class ProcFinderError(Exception):
    """Base exception for all iis-procfinder errors."""

    code: str = "PROCFINDER_ERROR"
    default_message: str = "An error occurred in iis-procfinder"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        **kwargs
    ):
        """Initialize error."""
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause
        self.kwargs = kwargs

        if not self.context.stack_trace and cause is not None:
            self.context.stack_trace = "".join(
                traceback.format_exception(type(cause), cause, cause.__traceback__)
            )

        super().__init__(self.message)

    def to_info(self) -> ErrorInfo:
        """Convert to structured error info."""
        return ErrorInfo(
            code=self.code,
            message=self.message,
            severity=self.severity,
            category=self.category,
            context=self.context,
            cause=self.cause,
            suggestions=self.get_suggestions()
        )

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        info = self.to_info()
        return {
            "error": {
                "code": info.code,
                "message": info.message,
                "severity": info.severity.value,
                "category": info.category.value,
                "suggestions": info.suggestions,
                "context": {
                    "timestamp": info.context.timestamp.isoformat(),
                    "component": info.context.component,
                    "operation": info.context.operation,
                    "metadata": info.context.metadata
                }
            }
        }


class ConfigurationError(ProcFinderError):
    """Configuration errors."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Make sure the configuration file is present and readable",
            "Run the command from an elevated command prompt"
        ]


# Enumeration Errors

class EnumerationError(ProcFinderError):
    """A process data source could not be enumerated at all."""
    code = "ENUMERATION_ERROR"
    default_message = "Process enumeration failed"
    category = ErrorCategory.ENUMERATION
    severity = ErrorSeverity.CRITICAL


class WorkerListingUnavailableError(EnumerationError):
    """The IIS worker process listing command could not be run."""
    code = "WORKER_LISTING_UNAVAILABLE"
    default_message = "Unable to get the application pool list"

    def get_suggestions(self) -> List[str]:
        return [
            "Run the command from an elevated command prompt",
            "Make sure IIS is installed and appcmd.exe exists at the configured path"
        ]


class HostingServiceUnavailableError(EnumerationError):
    """The worker listing reported an error, usually WAS not running."""
    code = "HOSTING_SERVICE_UNAVAILABLE"
    default_message = "WAS is not running or you are not running in an elevated command prompt"

    def get_suggestions(self) -> List[str]:
        return [
            "Start the Windows Process Activation Service (WAS) and W3SVC",
            "Run the command from an elevated command prompt"
        ]


class CandidateQueryError(EnumerationError):
    """The process table query for an executable name could not be built."""
    code = "CANDIDATE_QUERY_ERROR"
    default_message = "Invalid process table query"

    def get_suggestions(self) -> List[str]:
        return [
            "Set executable names as bare file names, e.g. dotnet.exe, MyApp.exe",
            "Do not include paths or quotes in process_names"
        ]


# External Tool Errors

class LaunchError(ProcFinderError):
    """The diagnostic tool could not be started."""
    code = "LAUNCH_ERROR"
    default_message = "Failed to start the diagnostic tool"
    category = ErrorCategory.EXTERNAL_TOOL

    def __init__(self, command_line: str, **kwargs):
        self.command_line = command_line
        message = kwargs.pop("message", None) or f"An exception has occured while starting: {command_line}"
        super().__init__(message, **kwargs)

    def get_suggestions(self) -> List[str]:
        return [
            "Make sure the ProcDump path is correctly set in the configuration file",
            "Try running the printed command from an elevated command prompt"
        ]


# Error Handler Decorator

def handle_errors(
    *error_classes: Type[Exception],
    fallback: Optional[Callable] = None,
    reraise: bool = True,
    log_level: ErrorSeverity = ErrorSeverity.ERROR
):
    """
    Decorator for handling errors in functions.

    Args:
        error_classes: Exception classes to catch
        fallback: Fallback function to call on error
        reraise: Whether to reraise the exception
        log_level: Logging level for errors
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except error_classes as e:
                getattr(logger, log_level.value)(
                    f"error_in_{func.__name__}",
                    error=str(e),
                    error_type=type(e).__name__
                )

                if fallback:
                    return fallback(*args, **kwargs)

                if reraise:
                    raise

                return None

        return wrapper

    return decorator


# Error Context Manager

@contextmanager
def error_context(
    component: str,
    operation: str,
    reraise: bool = True,
    **metadata
):
    """
    Context manager for error handling with context.

    Args:
        component: Component name
        operation: Operation name
        reraise: Whether to reraise exceptions
        **metadata: Additional context metadata
    """
    context = ErrorContext(
        component=component,
        operation=operation,
        metadata=metadata
    )

    try:
        yield context
    except ProcFinderError as e:
        e.context.component = e.context.component or component
        e.context.operation = e.context.operation or operation
        e.context.metadata.update(metadata)
        logger.info("procfinder_error_in_context", error=e.to_dict())
        if reraise:
            raise
    except Exception as e:
        wrapped = ProcFinderError(
            message=str(e),
            context=context,
            cause=e
        )
        logger.info(
            "unexpected_error_in_context",
            error=wrapped.to_dict(),
            exc_info=True
        )
        if reraise:
            raise wrapped from e


# Export public API
__all__ = [
    # Base classes
    'ProcFinderError',
    'ErrorContext',
    'ErrorInfo',
    'ErrorSeverity',
    'ErrorCategory',

    # Error types
    'ConfigurationError',
    'EnumerationError',
    'WorkerListingUnavailableError',
    'HostingServiceUnavailableError',
    'CandidateQueryError',
    'LaunchError',

    # Utilities
    'handle_errors',
    'error_context',
]
