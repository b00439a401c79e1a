"""Central defaults for epidemic inference.

Defines the Defaults dataclass with shared numerical settings (optimizer
tolerances, domain penalty, seasonal period, spline smoothness), plus the
enumerations that select caller policies at call time. Imported by every
module so fits stay reproducible and consistent across scripts.
"""


from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


# Central defaults for reproducible fits.
@dataclass(frozen=True)
class Defaults:
    seed: int = 42
    # Value substituted for an out-of-support likelihood evaluation.
    domain_penalty: float = 1e10
    xatol: float = 1e-4
    fatol: float = 1e-6
    maxiter: int = 2000
    # Relative step used for finite-difference curvature at the optimum.
    hessian_rel_step: float = 1e-3
    ci_level: float = 0.95
    period: int = 26
    spline_df: float = 2.5
    horizon: int = 1000
    beta_bounds: Tuple[float, float] = (0.0, 50.0)
    sbar_fractions: Tuple[float, ...] = tuple(round(0.01 * k, 2) for k in range(1, 21))


# Shared defaults instance used across modules.
DEFAULTS = Defaults()


class DomainPolicy(Enum):
    """What to do when a likelihood evaluation leaves the model's support."""

    PENALIZE = "penalize"
    RAISE = "raise"


class SimulationMode(Enum):
    DETERMINISTIC = "deterministic"
    STOCHASTIC = "stochastic"


class ZeroPolicy(Enum):
    """Handling of regression rows whose log arguments are not positive."""

    RAISE = "raise"
    DROP = "drop"


def coerce_enum(value: Union[str, Enum], enum_cls: type) -> Enum:
    """Return value as a member of enum_cls, accepting the member's string value."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise ValueError(f"{enum_cls.__name__} must be one of {allowed}, got {value!r}") from None
