"""
Typed configuration for the Ambrosio–Tortorelli solver.

The :class:`ATConfig` model holds every numerical parameter of the
alternating minimization of

    ∫ α(u−g)² + v²|∇u|² + λε|∇v|² + (λ/4ε)(1−v)²

namely the fidelity weight ``alpha`` (α), the base edge width ``epsilon``
(ε₀), the grid step ``gridstep`` (h), the λ schedule ``lambda_1`` ≥
``lambda_2`` with division ratio ``lambda_ratio`` (r), and the iteration cap
``nbiter`` (n) of the coordinate descent.  Validators clamp an inconsistent
λ schedule to safe values instead of rejecting it: a final λ larger than
the initial one is lowered to ``lambda_1`` and a ratio ≤ 1 is replaced by √2.

The module also supplies JSON save/load helpers that work with both
Pydantic v1 and v2.
"""
import json
import math
from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError, validator

SQRT2 = math.sqrt(2.0)


# ---------- Pydantic v1/v2 compatibility helpers ----------
def _model_dump(obj: BaseModel) -> Dict[str, Any]:
    """Return a dict of fields for both Pydantic v1 and v2 models."""
    try:
        return obj.model_dump()  # Pydantic v2
    except AttributeError:
        return obj.dict()        # Pydantic v1


def _model_dump_json(obj: BaseModel, indent: int = 4) -> str:
    """Return JSON for both Pydantic v1 and v2 models."""
    try:
        return obj.model_dump_json(indent=indent)  # v2
    except AttributeError:
        return json.dumps(obj.dict(), indent=indent)  # v1


class ATConfig(BaseModel):
    """
    Parameters of the Ambrosio–Tortorelli alternating minimization.

    - ``alpha``: weight of the fidelity term α(u−g)²;
    - ``epsilon``: base half edge width ε₀; the annealing starts at ε₀ and
      halves it while ε/2 ≥ h²;
    - ``gridstep``: grid step h scaling the discrete functionals;
    - ``lambda_1``, ``lambda_2``, ``lambda_ratio``: λ takes the values
      λ₁, λ₁/r, λ₁/r², … while λ ≥ λ₂;
    - ``nbiter``: maximum number of u/v alternations per (λ, ε);
    - ``tolerance``: sup‑norm change of v below which the alternation stops;
    - ``max_annealing_steps``: maximum number of ε halvings per λ;
    - ``clamp_v``: clip v into [0, 1] after every v solve (off by default,
      the raw linear‑solve output is kept);
    - ``solver``: SPD solve backend, ``"lu"`` (direct) or ``"cg"``.
    """
    alpha: float = Field(1.0, gt=0, description="Fidelity weight alpha")
    epsilon: float = Field(1.0, gt=0, description="Base edge width epsilon")
    gridstep: float = Field(1.0, gt=0, description="Grid step h")
    lambda_1: float = Field(0.3125, gt=0, description="Initial lambda")
    lambda_2: float = Field(0.00005, gt=0, description="Final lambda")
    lambda_ratio: float = Field(SQRT2, description="Division ratio of lambda per step")
    nbiter: int = Field(10, ge=0, description="Max coordinate-descent iterations")
    tolerance: float = Field(1e-4, gt=0, description="Sup-norm convergence tolerance on v")
    max_annealing_steps: int = Field(5, ge=1, description="Max epsilon halvings per lambda")
    clamp_v: bool = Field(False, description="Clip v into [0, 1] after each solve")
    solver: str = Field("lu", description="SPD solver backend ('lu' or 'cg')")

    @validator("lambda_2")
    def clamp_lambda_2(cls, l2_val, values):
        l1_val = values.get("lambda_1")
        if l1_val is not None and l2_val > l1_val:
            return l1_val
        return l2_val

    @validator("lambda_ratio")
    def clamp_lambda_ratio(cls, ratio_val):
        if not ratio_val > 1.0:
            return SQRT2
        return ratio_val

    @validator("solver")
    def known_solver(cls, name):
        name = name.lower()
        if name not in ("lu", "cg"):
            raise ValueError(f"solver must be 'lu' or 'cg' (got '{name}')")
        return name

    def single_lambda(self, value: float) -> "ATConfig":
        """Copy of this configuration running the single value λ₁ = λ₂ = ``value``."""
        params = _model_dump(self)
        params.update(lambda_1=value, lambda_2=value)
        return ATConfig(**params)

    def updated(self, **changes: Any) -> "ATConfig":
        """Validated copy with some fields replaced."""
        params = _model_dump(self)
        params.update(changes)
        return ATConfig(**params)


# ---------- Save/load helpers ----------
def save_params(config: ATConfig, filepath: str = "at_config.json") -> None:
    """Saves the configuration to JSON."""
    try:
        with open(filepath, "w") as f:
            f.write(_model_dump_json(config, indent=4))
        print(f"Configuration saved to '{filepath}'.")
    except IOError as e:
        print(f"[Warning] Could not save configuration file: {e}")


def load_params(filepath: str = "at_config.json") -> ATConfig:
    """Loads a configuration from JSON or returns the default parameters."""
    try:
        with open(filepath, "r") as f:
            data = json.load(f)
        config = ATConfig(**data)
        print(f"Loaded configuration from '{filepath}'.")
        return config
    except (FileNotFoundError, ValidationError, json.JSONDecodeError):
        print(f"No valid configuration found in '{filepath}'. Using default parameters.")
        return ATConfig()
