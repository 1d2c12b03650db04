"""
mab-runner - Thompson sampling tournaments for agent selection

An orchestrator asks which agent to try next, runs it, scores the result in
[0, 1], and reports back. mab-runner keeps the per-agent posteriors, picks
the next agent by Thompson sampling, and says when a winner is clear.
"""

__version__ = "1.0.0"

from .errors import (
    MabRunnerError,
    UsageError,
    InvalidScoreError,
    NotInitializedError,
    UnknownAgentError,
    StateCorruptionError,
)

from .model import (
    AgentRecord,
    ModelParams,
    posterior,
)

from .rng import SeededRandom

from .state import (
    StateStore,
    TournamentState,
)

from .tournament import Tournament

__all__ = [
    # Version
    "__version__",
    # Errors
    "MabRunnerError",
    "UsageError",
    "InvalidScoreError",
    "NotInitializedError",
    "UnknownAgentError",
    "StateCorruptionError",
    # Model
    "AgentRecord",
    "ModelParams",
    "posterior",
    "SeededRandom",
    # State
    "StateStore",
    "TournamentState",
    # Dispatcher
    "Tournament",
]
