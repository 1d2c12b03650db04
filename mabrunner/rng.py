"""
mabrunner/rng.py - Seeded, serializable random stream

Every CLI call is a fresh process, so the generator can't just live in
memory. SeededRandom wraps a numpy PCG64 bit generator and exposes its
internal state as a plain tuple of ints; the tournament persists that tuple
on every save and hands it back on the next load, so the stream continues
exactly where the previous process stopped.

Draw accounting (relied on by tests):
  - next()      consumes 1 uniform
  - gaussian()  consumes exactly 2 uniforms (Box-Muller, no rejection loop)
"""

import logging
import math
import secrets

import numpy as np

logger = logging.getLogger(__name__)

# (state, inc, has_uint32, uinteger) - the full PCG64 state
RngState = tuple[int, int, int, int]

TWO_PI = 2.0 * math.pi


def entropy_seed() -> int:
    """Fresh 32-bit seed from the OS entropy pool (used when init gets no --seed)."""
    return secrets.randbits(32)


def validate_state(state) -> RngState:
    """Check a snapshot fits PCG64 before it reaches numpy.

    Raises ValueError for anything numpy would reject with OverflowError or
    silently accept out of range.
    """
    if isinstance(state, (str, bytes)) or len(state) != 4:
        raise ValueError(f"RNG state must have 4 fields, got {state!r}")
    for value in state:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"RNG state fields must be integers, got {value!r}")

    st, inc, has_uint32, uinteger = state
    if not 0 <= st < 2**128:
        raise ValueError(f"RNG state word out of range: {st}")
    if not 0 <= inc < 2**128:
        raise ValueError(f"RNG increment out of range: {inc}")
    if has_uint32 not in (0, 1):
        raise ValueError(f"RNG has_uint32 must be 0 or 1, got {has_uint32}")
    if not 0 <= uinteger < 2**32:
        raise ValueError(f"RNG buffered uint32 out of range: {uinteger}")
    return st, inc, has_uint32, uinteger


def _seed_sequence(seed: int) -> np.random.SeedSequence:
    # SeedSequence only takes non-negative entropy; fold the sign in as a
    # trailing word so -5 and 5 give different streams.
    return np.random.SeedSequence([abs(seed), 1 if seed < 0 else 0])


class SeededRandom:
    """Deterministic uniform stream in [0, 1) with a serializable state."""

    def __init__(self, seed: int):
        self.seed = int(seed)
        self._bitgen = np.random.PCG64(_seed_sequence(self.seed))
        self._gen = np.random.Generator(self._bitgen)

    @classmethod
    def from_state(cls, seed: int, state: RngState) -> "SeededRandom":
        """Rebuild a generator mid-stream from a get_state() snapshot."""
        rng = cls(seed)
        rng.set_state(state)
        return rng

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_state(self) -> RngState:
        raw = self._bitgen.state
        return (
            int(raw["state"]["state"]),
            int(raw["state"]["inc"]),
            int(raw["has_uint32"]),
            int(raw["uinteger"]),
        )

    def set_state(self, state: RngState) -> None:
        st, inc, has_uint32, uinteger = validate_state(state)
        self._bitgen.state = {
            "bit_generator": "PCG64",
            "state": {"state": st, "inc": inc},
            "has_uint32": has_uint32,
            "uinteger": uinteger,
        }

    # ------------------------------------------------------------------
    # Draws
    # ------------------------------------------------------------------

    def next(self) -> float:
        """Next uniform in [0, 1). Never returns 1.0."""
        return float(self._gen.random())

    def gaussian(self, mean: float, std: float) -> float:
        """Sample N(mean, std^2) via Box-Muller from exactly two uniforms.

        u1 is in [0, 1), so 1 - u1 is in (0, 1] and the log is always
        defined; the radicand is clamped at zero so sqrt never sees -0.0 or
        a rounding negative.
        """
        if not math.isfinite(std) or std < 0:
            raise ValueError(f"std must be finite and non-negative, got {std}")

        u1 = self.next()
        u2 = self.next()
        radius = math.sqrt(max(0.0, -2.0 * math.log(1.0 - u1)))
        z = radius * math.cos(TWO_PI * u2)
        return mean + std * z

    def __repr__(self) -> str:
        return f"SeededRandom(seed={self.seed})"
