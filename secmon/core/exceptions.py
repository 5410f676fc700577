"""Service-level exceptions. The API layer maps these to HTTP status codes."""


class SecmonError(Exception):
    """Base class for errors raised by secmon services."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class IssueNotFoundError(SecmonError):
    """Raised when an operator action targets an issue id that does not exist."""

    def __init__(self, issue_id: int) -> None:
        self.issue_id = issue_id
        super().__init__(f"Issue {issue_id} not found.")


class IgnoreRuleNotFoundError(SecmonError):
    """Raised when an ignore rule id does not exist."""

    def __init__(self, rule_id: int) -> None:
        self.rule_id = rule_id
        super().__init__(f"Ignore rule {rule_id} not found.")


class InvalidIgnoreRuleError(SecmonError):
    """Raised when a rule cannot be built (unknown type, empty value, bad regex)."""


class ChannelNotFoundError(SecmonError):
    """Raised when a channel name is not registered."""

    def __init__(self, channel_name: str) -> None:
        self.channel_name = channel_name
        super().__init__(f"Channel '{channel_name}' is not configured.")


class ChannelSendError(SecmonError):
    """Raised by channel adapters when the backend rejects a message."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class NotificationTaskNotFoundError(SecmonError):
    """Raised when a notification task id does not exist."""

    def __init__(self, task_id: int) -> None:
        self.task_id = task_id
        super().__init__(f"Notification task {task_id} not found.")


class RunThrottledError(SecmonError):
    """Raised when a run is requested before the minimum interval has elapsed."""


class RunInProgressError(SecmonError):
    """Raised when another orchestrator run holds the lock."""


class InvalidTaskStateError(SecmonError):
    """Raised when a notification task cannot be re-queued from its current status."""
