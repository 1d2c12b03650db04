"""
mabrunner/errors.py - Error taxonomy

Every error the engine raises on purpose carries the process exit code the
CLI should use. Library code raises; only mabrunner.cli turns these into
exit codes.
"""


class MabRunnerError(Exception):
    """Base class for all expected mab-runner failures."""

    exit_code = 1


class UsageError(MabRunnerError, ValueError):
    """Malformed or missing arguments, or no/unknown command."""

    exit_code = 1

    def __init__(self, message: str = "", usage: str | None = None):
        super().__init__(message)
        self.usage = usage


class InvalidScoreError(UsageError):
    """Score is not a number in [0, 1]."""


class NotInitializedError(MabRunnerError, RuntimeError):
    """A stateful command ran before `init` (or after `reset`)."""

    exit_code = 2

    def __init__(self, message: str | None = None):
        super().__init__(
            message or 'Tournament not initialized. Run "mab-runner init --agents <N>" first'
        )


class UnknownAgentError(MabRunnerError, KeyError):
    """Agent id does not name an agent in the current tournament."""

    exit_code = 3

    def __init__(self, agent_id: str, valid_ids: list[str] | None = None):
        self.agent_id = agent_id
        self.valid_ids = valid_ids or []
        super().__init__(agent_id)

    def __str__(self) -> str:
        msg = f"Invalid agent ID '{self.agent_id}'"
        if self.valid_ids:
            if len(self.valid_ids) > 4:
                msg += f" (valid: {self.valid_ids[0]}..{self.valid_ids[-1]})"
            else:
                msg += f" (valid: {', '.join(self.valid_ids)})"
        return msg


class StateCorruptionError(MabRunnerError, RuntimeError):
    """The state file exists but can't be parsed into a tournament."""

    exit_code = 4
