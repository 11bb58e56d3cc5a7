"""Exception hierarchy for hostguard."""


class HostguardError(Exception):
    """Base class for all hostguard errors."""


class ConfigurationError(HostguardError):
    """Missing or invalid settings. Fatal at startup."""


class TransientExternalError(HostguardError):
    """A network or API failure that is worth retrying."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class ExternalServiceError(HostguardError):
    """An external service refused the request (not retried)."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class ExecutionFailure(HostguardError):
    """A remediation step could not complete. Carries the exit code to report."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


class UnsafeCommandError(HostguardError):
    """A command matched the dangerous-command deny-list."""

    def __init__(self, command: str, kind: str, pattern: str):
        super().__init__(f"Refusing to run dangerous command ({kind}): {command}")
        self.command = command
        self.kind = kind
        self.pattern = pattern


class CorruptedStateError(HostguardError):
    """A persisted state record could not be decoded."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Corrupted state record {path}: {reason}")
        self.path = path
        self.reason = reason
