"""Custom exception hierarchy for guildkeeper.

Provides precise error classification across the dispatch core, the
persistence layer and the platform connection, enabling targeted
error handling, retry decisions, and better debugging context.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying (timeout, rate limit, locked db)
    PERMANENT = "permanent"          # Not worth retrying (bad input, missing record)
    INFRASTRUCTURE = "infrastructure"  # Missing credentials, env issues


class GuildkeeperError(Exception):
    """Base exception for all guildkeeper errors.

    All custom exceptions inherit from this, enabling broad catches
    when needed while still allowing precise handling per subsystem.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "handlers.registry").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Handler exceptions
# ---------------------------------------------------------------------------

class DefinitionInvalidError(GuildkeeperError):
    """A candidate handler definition lacks the required shape.

    Attributes:
        source: Where the candidate came from (module or file), if known.
        reason: Human-readable explanation of what is wrong.
    """

    def __init__(
        self,
        reason: str = "",
        *,
        source: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.source = source
        self.reason = reason
        super().__init__(
            reason, category=category, module=module or "handlers", **context
        )


class HandlerNotFoundError(GuildkeeperError):
    """An inbound event referenced a command with no registered handler."""

    def __init__(
        self,
        message: str = "",
        *,
        name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.name = name
        super().__init__(
            message, category=category, module=module or "dispatcher", **context
        )


class HandlerExecutionError(GuildkeeperError):
    """A handler body raised while being invoked.

    Attributes:
        handler: Command name or event type of the failing handler.
        originator: User id that triggered the invocation (if any).
    """

    def __init__(
        self,
        message: str = "",
        *,
        handler: Optional[str] = None,
        originator: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.handler = handler
        self.originator = originator
        super().__init__(
            message, category=category, module=module or "dispatcher", **context
        )


# ---------------------------------------------------------------------------
# Database exceptions
# ---------------------------------------------------------------------------

class DatabaseError(GuildkeeperError):
    """Error during database operations.

    Attributes:
        operation: The DB operation that failed (e.g. "insert", "query").
        table: The table involved (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.operation = operation
        self.table = table
        super().__init__(
            message, category=category, module=module or "database", **context
        )


class RecordExistsError(DatabaseError):
    """A create operation hit an existing primary key."""

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = "insert",
        table: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            table=table,
            category=category,
            module=module,
            **context,
        )


class RecordNotFoundError(DatabaseError):
    """An update or delete targeted a record that does not exist."""

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            table=table,
            category=category,
            module=module,
            **context,
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(GuildkeeperError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


# ---------------------------------------------------------------------------
# Platform exceptions
# ---------------------------------------------------------------------------

class PlatformRequestError(GuildkeeperError):
    """A REST call to the chat platform returned a non-success status.

    Rate limits and server errors are TRANSIENT, everything else is
    PERMANENT.

    Attributes:
        status: HTTP status code.
        body: Truncated response body.
    """

    def __init__(
        self,
        message: str = "",
        *,
        status: int = 0,
        body: str = "",
        category: Optional[ErrorCategory] = None,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.status = status
        self.body = body
        if category is None:
            category = (
                ErrorCategory.TRANSIENT
                if status == 429 or status >= 500
                else ErrorCategory.PERMANENT
            )
        super().__init__(
            message, category=category, module=module or "rest", status=status, **context
        )


class GatewayError(GuildkeeperError):
    """The gateway connection failed or sent something unusable."""

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "gateway", **context
        )
