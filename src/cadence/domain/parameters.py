"""
FSRS model weights.

The 17 weights are an immutable value: the global default is one instance,
per-user fits are others. Nothing here is mutated after construction.
"""

from collections.abc import Sequence
from dataclasses import asdict, dataclass, fields, replace

DEFAULT_PARAMETERS_VERSION = "fsrs-4.5"

PARAMETER_NAMES: tuple[str, ...] = tuple(f"w{i}" for i in range(17))


@dataclass(frozen=True)
class FsrsParameters:
    """
    Weights governing every update formula of the memory model.

    Attributes:
        w0, w1: Initial stability base and grade multiplier.
        w2, w3: Initial difficulty base and grade multiplier.
        w4: Difficulty adjustment per grade step.
        w5: Difficulty mean-reversion factor.
        w6..w9: Stability growth on success (scale, difficulty exponent,
            stability exponent, retrievability factor).
        w10..w13: Stability after failure (base, difficulty exponent,
            stability exponent, retrievability factor).
        w14..w16: Reserved retention-target weights, carried and fitted
            but not read by the current formulas.
    """

    w0: float
    w1: float
    w2: float
    w3: float
    w4: float
    w5: float
    w6: float
    w7: float
    w8: float
    w9: float
    w10: float
    w11: float
    w12: float
    w13: float
    w14: float
    w15: float
    w16: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "FsrsParameters":
        if len(values) != len(PARAMETER_NAMES):
            raise ValueError(
                f"Expected {len(PARAMETER_NAMES)} weights, got {len(values)}"
            )
        return cls(*(float(v) for v in values))

    @classmethod
    def from_dict(cls, data: dict[str, float]) -> "FsrsParameters":
        missing = [name for name in PARAMETER_NAMES if name not in data]
        if missing:
            raise ValueError(f"Missing weights: {', '.join(missing)}")
        return cls(**{name: float(data[name]) for name in PARAMETER_NAMES})

    def as_tuple(self) -> tuple[float, ...]:
        return tuple(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    def replace(self, **changes: float) -> "FsrsParameters":
        return replace(self, **changes)


DEFAULT_PARAMETERS = FsrsParameters(
    w0=0.4872,
    w1=1.4003,
    w2=3.7145,
    w3=13.8206,
    w4=5.1618,
    w5=1.2298,
    w6=0.8975,
    w7=0.031,
    w8=1.6474,
    w9=0.1367,
    w10=1.0461,
    w11=2.1072,
    w12=0.0793,
    w13=0.3246,
    w14=1.587,
    w15=0.2272,
    w16=2.8755,
)

# Hard (min, max) range per weight. Optimization never leaves these,
# including the finite-difference samples.
PARAMETER_BOUNDS: dict[str, tuple[float, float]] = {
    "w0": (0.1, 2.0),
    "w1": (0.5, 3.0),
    "w2": (1.0, 10.0),
    "w3": (5.0, 30.0),
    "w4": (1.0, 15.0),
    "w5": (0.1, 2.0),
    "w6": (-2.0, 3.0),
    "w7": (-0.1, 0.2),
    "w8": (0.5, 3.0),
    "w9": (0.01, 0.5),
    "w10": (0.1, 3.0),
    "w11": (0.5, 5.0),
    "w12": (0.01, 0.3),
    "w13": (0.1, 1.0),
    "w14": (0.5, 5.0),
    "w15": (0.1, 1.0),
    "w16": (1.0, 10.0),
}


def clamp_weight(name: str, value: float) -> float:
    low, high = PARAMETER_BOUNDS[name]
    return max(low, min(high, value))


def clamp_to_bounds(params: FsrsParameters) -> FsrsParameters:
    """Return a copy of ``params`` with every weight clamped into its bound."""
    return FsrsParameters(
        **{name: clamp_weight(name, getattr(params, name)) for name in PARAMETER_NAMES}
    )


def within_bounds(params: FsrsParameters) -> bool:
    for name in PARAMETER_NAMES:
        low, high = PARAMETER_BOUNDS[name]
        if not low <= getattr(params, name) <= high:
            return False
    return True
