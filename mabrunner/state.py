"""
mabrunner/state.py - Tournament state and its single-slot store

One JSON file holds the whole tournament. StateStore.save() writes a temp
file next to the slot and os.replace()s it in, so a crash mid-write leaves
either the old document or the new one, never half of one.

Missing file = no tournament (load() returns None). A file that exists but
doesn't parse is StateCorruptionError; it is never mistaken for "absent".
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from mabrunner.errors import StateCorruptionError
from mabrunner.model import AgentRecord, ModelParams, agent_id_for, as_int
from mabrunner.rng import RngState, SeededRandom, validate_state

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
STATE_FILENAME = "mab-runner-state.json"


def default_state_path() -> Path:
    return Path(tempfile.gettempdir()) / STATE_FILENAME


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# State
# ============================================================================


@dataclass
class TournamentState:
    """Everything that survives between CLI invocations."""

    agent_count: int
    seed: int
    rng_state: RngState
    agents: list[AgentRecord]
    total_evaluations: int = 0
    created_at: str = field(default_factory=_now)
    params: ModelParams = field(default_factory=ModelParams)
    version: int = SCHEMA_VERSION

    @classmethod
    def create(
        cls, agent_count: int, seed: int, params: ModelParams | None = None
    ) -> "TournamentState":
        """Fresh tournament: every agent unevaluated, RNG at the seed's origin."""
        if agent_count < 1:
            raise ValueError(f"agent_count must be positive, got {agent_count}")
        return cls(
            agent_count=agent_count,
            seed=seed,
            rng_state=SeededRandom(seed).get_state(),
            agents=[AgentRecord(id=agent_id_for(i)) for i in range(agent_count)],
            params=params or ModelParams(),
        )

    def rng(self) -> SeededRandom:
        """Generator positioned where the last invocation left it."""
        return SeededRandom.from_state(self.seed, self.rng_state)

    def agent_ids(self) -> list[str]:
        return [a.id for a in self.agents]

    def find_agent(self, agent_id: str) -> int | None:
        """Index of agent_id, or None if it isn't one of ours."""
        for index, record in enumerate(self.agents):
            if record.id == agent_id:
                return index
        return None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "agent_count": self.agent_count,
            "seed": self.seed,
            "rng_state": list(self.rng_state),
            "agents": [a.to_dict() for a in self.agents],
            "total_evaluations": self.total_evaluations,
            "created_at": self.created_at,
            "params": self.params.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TournamentState":
        """Parse and cross-check a state document.

        Raises KeyError/TypeError/ValueError on anything malformed; the store
        turns those into StateCorruptionError.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")

        version = int(data.get("version", SCHEMA_VERSION))
        if version != SCHEMA_VERSION:
            raise ValueError(f"unsupported schema version {version}")

        agent_count = as_int(data["agent_count"], "agent_count")
        if agent_count < 1:
            raise ValueError(f"agent_count must be positive, got {agent_count}")

        rng_state = validate_state(tuple(data["rng_state"]))

        agents = [AgentRecord.from_dict(a) for a in data["agents"]]
        if len(agents) != agent_count:
            raise ValueError(
                f"agent_count is {agent_count} but {len(agents)} agent records are stored"
            )
        for index, record in enumerate(agents):
            if record.id != agent_id_for(index):
                raise ValueError(f"agent {index} has id {record.id!r}")

        total = as_int(data["total_evaluations"], "total_evaluations")
        counted = sum(a.evaluation_count for a in agents)
        if total != counted:
            raise ValueError(
                f"total_evaluations is {total} but agent counts sum to {counted}"
            )

        params = data.get("params", {})
        if not isinstance(params, dict):
            raise TypeError(f"params must be an object, got {type(params).__name__}")

        return cls(
            agent_count=agent_count,
            seed=as_int(data["seed"], "seed"),
            rng_state=rng_state,
            agents=agents,
            total_evaluations=total,
            created_at=str(data.get("created_at", "")),
            params=ModelParams.from_dict(params),
            version=version,
        )


# ============================================================================
# Store
# ============================================================================


class StateStore:
    """Single well-known slot on disk for the current tournament."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else default_state_path()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> TournamentState | None:
        if not self.path.exists():
            logger.debug(f"No state at {self.path}")
            return None

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            state = TournamentState.from_dict(raw)
        except (ValueError, KeyError, TypeError) as e:
            raise StateCorruptionError(
                f"State file {self.path} is corrupted: {e}. "
                f'Run "mab-runner reset" to discard it'
            ) from e

        logger.debug(
            f"Loaded tournament from {self.path} "
            f"({state.agent_count} agents, {state.total_evaluations} evaluations)"
        )
        return state

    def save(self, state: TournamentState) -> None:
        """Atomically replace the slot with state."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.to_dict(), indent=2)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        logger.debug(f"Saved tournament to {self.path}")

    def clear(self) -> bool:
        """Remove the slot. Returns True if there was anything to remove."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Removed {self.path}")
        return True
