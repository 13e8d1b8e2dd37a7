from __future__ import annotations


class QuotaError(Exception):
    pass


class ValidationError(QuotaError, ValueError):
    pass


class CommandError(QuotaError):
    def __init__(self, message: str, subcommand: str) -> None:
        super().__init__(message)
        self.subcommand = subcommand


class CommandTimeout(CommandError):
    def __init__(self, subcommand: str, timeout_s: float) -> None:
        super().__init__(
            f"Timed out ({timeout_s:g}s) waiting for quota command: {subcommand}",
            subcommand,
        )
        self.timeout_s = timeout_s


class CommandFailed(CommandError):
    def __init__(self, subcommand: str, returncode: int, stderr: str = "") -> None:
        super().__init__(f"The quota command has failed: {subcommand}", subcommand)
        self.returncode = returncode
        # kept for diagnostics, not part of the message
        self.stderr = stderr


class LockTimeout(QuotaError):
    def __init__(self, path: str, attempts: int) -> None:
        super().__init__(f"Could not acquire lock {path} after {attempts} attempts")
        self.path = path
        self.attempts = attempts


class ConsistencyError(QuotaError):
    pass


class UnknownProjectId(ConsistencyError):
    def __init__(self, project_id: int) -> None:
        super().__init__(f"This project ID is unknown: {project_id}")
        self.project_id = project_id


class RegistryFormatError(QuotaError):
    pass


class OutputParseError(QuotaError):
    def __init__(self, message: str, line: str) -> None:
        super().__init__(f"{message}: {line!r}")
        self.line = line


class ProjectNotSetup(QuotaError):
    pass
