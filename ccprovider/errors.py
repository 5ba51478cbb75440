"""Failure classification for the Claude Code CLI provider.

Two independent questions are answered here:

* ``is_retryable`` - is the failure transient (spawn hiccup, dropped socket,
  rate limiting) and worth another attempt?
* ``classify`` - once we give up, which user-facing category does the failure
  belong to, and what should the user do about it?

Both work on free-form text coming from the CLI or its SDK, so the keyword
tables are plain module data. Callers can pass their own tables when the
tool's wording changes.
"""

from __future__ import annotations

import enum
import errno
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from .adapters import AdapterError
from .logging import get_logger

logger = get_logger("errors")

DEFAULT_CLI_NAME = "claude"


class ErrorCategory(enum.Enum):
    RETRYABLE = "retryable"
    AUTH_REQUIRED = "auth_required"
    CLI_MISSING = "cli_missing"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    ACCESS_DENIED = "access_denied"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class FailureInfo:
    """The parts of an exception the classifiers look at."""

    message: str
    code: str | None = None
    status: int | None = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "FailureInfo":
        code: Any = getattr(error, "code", None)
        if code is None and isinstance(error, OSError) and error.errno is not None:
            code = errno.errorcode.get(error.errno)
        status: Any = getattr(error, "status", None)
        if status is None:
            status = getattr(error, "status_code", None)
        try:
            status = int(status) if status is not None else None
        except (TypeError, ValueError):
            status = None
        return cls(
            message=str(error) or type(error).__name__,
            code=str(code) if code is not None else None,
            status=status,
        )


@dataclass(frozen=True)
class ClassificationRule:
    category: ErrorCategory
    keywords: tuple[str, ...] = ()
    codes: frozenset[str] = frozenset()
    statuses: frozenset[int] = frozenset()

    def matches(self, info: FailureInfo) -> bool:
        message = info.message.lower()
        if any(keyword in message for keyword in self.keywords):
            return True
        if info.code is not None and info.code.upper() in self.codes:
            return True
        return info.status is not None and info.status in self.statuses


def build_classification_rules(cli_name: str = DEFAULT_CLI_NAME) -> tuple[ClassificationRule, ...]:
    """Return the rule table in priority order; the first match wins."""
    return (
        ClassificationRule(
            ErrorCategory.AUTH_REQUIRED,
            keywords=(
                "not authenticated",
                "auth_required",
                "authentication",
                "unauthorized",
                "session expired",
                "invalid token",
                "login required",
                "please authenticate",
            ),
            codes=frozenset({"AUTH_REQUIRED", "UNAUTHORIZED"}),
            statuses=frozenset({401}),
        ),
        ClassificationRule(
            ErrorCategory.CLI_MISSING,
            keywords=("command not found", "enoent", "not found", f"spawn {cli_name.lower()}"),
            codes=frozenset({"ENOENT"}),
        ),
        ClassificationRule(
            ErrorCategory.PERMISSION_DENIED,
            keywords=("eacces", "permission denied"),
            codes=frozenset({"EACCES"}),
        ),
        ClassificationRule(
            ErrorCategory.TIMEOUT,
            keywords=("timeout", "etimedout", "timed out"),
            codes=frozenset({"ETIMEDOUT", "TIMEOUT"}),
        ),
        ClassificationRule(
            ErrorCategory.NETWORK_ERROR,
            keywords=("econnrefused", "econnreset", "enotfound", "network", "socket hang up"),
            codes=frozenset({"ECONNREFUSED", "ECONNRESET", "ENOTFOUND"}),
        ),
        ClassificationRule(
            ErrorCategory.ACCESS_DENIED,
            keywords=("access denied", "forbidden", "not authorized"),
            statuses=frozenset({403}),
        ),
    )


CLASSIFICATION_RULES = build_classification_rules()

RETRYABLE_KEYWORDS: tuple[str, ...] = (
    # process hiccups
    "spawn",
    "epipe",
    "sigterm",
    "sigkill",
    # network
    "econnreset",
    "socket hang up",
    "network",
    # load shedding
    "rate limit",
    "overloaded",
    "temporarily unavailable",
)

RETRYABLE_CODES = frozenset({"EAGAIN", "EMFILE", "ENFILE"})


def _info(error: BaseException | FailureInfo) -> FailureInfo:
    if isinstance(error, FailureInfo):
        return error
    return FailureInfo.from_exception(error)


def classify(
    error: BaseException | FailureInfo,
    rules: Sequence[ClassificationRule] | None = None,
) -> ErrorCategory:
    """Map a failure to its user-facing category."""
    info = _info(error)
    for rule in CLASSIFICATION_RULES if rules is None else rules:
        if rule.matches(info):
            return rule.category
    return ErrorCategory.UNCLASSIFIED


def is_retryable(
    error: BaseException | FailureInfo,
    keywords: Iterable[str] = RETRYABLE_KEYWORDS,
    codes: frozenset[str] = RETRYABLE_CODES,
) -> bool:
    """Return True when the failure looks transient."""
    info = _info(error)
    message = info.message.lower()
    if any(keyword in message for keyword in keywords):
        return True
    return info.code is not None and info.code.upper() in codes


# Remediation messages -------------------------------------------------------------

_RULE = "=" * 63


def _banner(title: str, body: str) -> str:
    return f"{_RULE}\n  {title}\n{_RULE}\n\n{body.strip()}\n{_RULE}"


REMEDIATION: dict[ErrorCategory, str] = {
    ErrorCategory.AUTH_REQUIRED: _banner(
        "Claude Code Authentication Required",
        """
You need to authenticate with Claude Code to use this provider.

To authenticate:
  claude login

This will open your browser to complete the authentication.
After authenticating, try your command again.

If you were previously logged in, your session may have expired.
""",
    ),
    ErrorCategory.CLI_MISSING: _banner(
        "Claude Code CLI Not Found",
        """
The Claude Code CLI is required but not installed on your system.

To fix this issue:

1. Install Claude Code CLI globally:
   npm install -g @anthropic-ai/claude-code

2. Verify installation:
   claude --version

3. Authenticate with your Claude account:
   claude login

For more information, visit:
https://github.com/anthropics/claude-code
""",
    ),
    ErrorCategory.PERMISSION_DENIED: _banner(
        "Permission Error",
        """
Claude Code CLI exists but cannot be executed due to permissions.

To fix this issue:

1. Check file permissions:
   ls -la $(which claude)

2. If needed, fix permissions:
   chmod +x $(which claude)

3. Or reinstall with proper permissions:
   sudo npm install -g @anthropic-ai/claude-code

4. After fixing permissions, authenticate:
   claude login
""",
    ),
    ErrorCategory.TIMEOUT: _banner(
        "Request Timeout",
        """
The request to Claude timed out. This can happen with complex
queries or when Claude needs more time to think.

To fix this issue:

1. For complex tasks, increase the timeout in .ccprovider.yml:
   claudeCode:
     timeoutMs: 300000   # 5 minutes

2. For very long tasks (up to 10 minutes):
   claudeCode:
     timeoutMs: 600000   # 10 minutes

3. Try breaking down complex requests into smaller parts

4. Check your internet connection stability

The default is 2 minutes (120000ms). Opus may need longer
timeouts for complex reasoning tasks.
""",
    ),
    ErrorCategory.NETWORK_ERROR: _banner(
        "Network Connection Error",
        """
Unable to connect to Claude servers. This may be due to:

1. Internet connectivity issues
2. Firewall or proxy blocking the connection
3. Claude service temporarily unavailable

To troubleshoot:

1. Check your internet connection:
   ping anthropic.com

2. Verify Claude CLI can connect:
   claude --version

3. If behind a corporate firewall, configure proxy:
   export HTTPS_PROXY=http://your-proxy:port

4. Try again in a few moments if the service is down
""",
    ),
    ErrorCategory.ACCESS_DENIED: _banner(
        "Access Denied",
        """
Claude Code denied access to this operation. This could mean:

1. Your authentication has expired:
   claude login

2. Your account doesn't have access to this model

3. Rate limits or usage limits have been exceeded

Try running "claude login" to refresh your authentication.
""",
    ),
}

UNCLASSIFIED_HINT = "If this appears to be an authentication issue, try running:\n  claude login"


def remediation_message(category: ErrorCategory, original: str) -> str:
    """Return the remediation text for a category with the original error appended."""
    if category in REMEDIATION:
        return f"{REMEDIATION[category]}\n\nOriginal error: {original}"
    return f"{original}\n\n{UNCLASSIFIED_HINT}"


# Exception hierarchy --------------------------------------------------------------


class ProviderError(AdapterError):
    """A classified provider failure carrying remediation guidance."""

    category = ErrorCategory.UNCLASSIFIED

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        original: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.original = original


class AuthRequiredError(ProviderError):
    category = ErrorCategory.AUTH_REQUIRED


class CliMissingError(ProviderError):
    category = ErrorCategory.CLI_MISSING


class CliPermissionError(ProviderError):
    category = ErrorCategory.PERMISSION_DENIED


class ProviderTimeoutError(ProviderError):
    category = ErrorCategory.TIMEOUT


class ProviderNetworkError(ProviderError):
    category = ErrorCategory.NETWORK_ERROR


class AccessDeniedError(ProviderError):
    category = ErrorCategory.ACCESS_DENIED


ERROR_TYPES: dict[ErrorCategory, type[ProviderError]] = {
    ErrorCategory.AUTH_REQUIRED: AuthRequiredError,
    ErrorCategory.CLI_MISSING: CliMissingError,
    ErrorCategory.PERMISSION_DENIED: CliPermissionError,
    ErrorCategory.TIMEOUT: ProviderTimeoutError,
    ErrorCategory.NETWORK_ERROR: ProviderNetworkError,
    ErrorCategory.ACCESS_DENIED: AccessDeniedError,
}


def translate_error(
    operation: str,
    error: BaseException,
    rules: Sequence[ClassificationRule] | None = None,
) -> ProviderError:
    """Turn a raw failure into the matching ``ProviderError`` subclass.

    Already classified errors are returned unchanged. The caller is expected to
    ``raise translate_error(...) from error`` so the root cause stays chained.
    """
    if isinstance(error, ProviderError):
        return error

    info = FailureInfo.from_exception(error)
    logger.debug(
        "Claude Code %s error: type=%s code=%s status=%s message=%s",
        operation,
        type(error).__name__,
        info.code,
        info.status,
        info.message,
    )
    category = classify(info, rules)
    error_type = ERROR_TYPES.get(category, ProviderError)
    return error_type(
        remediation_message(category, info.message),
        operation=operation,
        original=error,
    )
