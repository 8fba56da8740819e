"""Shared parameter handling for the pipeline builders."""

from __future__ import annotations

import random
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..catalog import ModelSet


# Used when a builder is handed an unresolved (negative) seed
FALLBACK_SEED = 12345

MAX_SEED = 2**53 - 1


class SamplerParams(BaseModel):
    """
    KSampler settings shared by every pipeline kind.

    Unset values fall back to the selected model set's recommendations.
    A negative seed means "pick one at random"; call with_resolved_seed()
    before building so the builder itself stays deterministic.
    """
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    seed: int = Field(-1, description="Sampler seed, negative for random")
    steps: Optional[int] = Field(None, ge=1, description="Sampler steps")
    cfg: Optional[float] = Field(None, ge=0, description="CFG scale")
    sampler_name: Optional[str] = Field(None, description="Sampler name")
    scheduler: Optional[str] = Field(None, description="Scheduler name")
    denoise: float = Field(1.0, ge=0, le=1, description="Denoise strength")

    def with_resolved_seed(self, rng: Optional[random.Random] = None) -> "SamplerParams":
        """Return a copy whose seed is concrete."""
        if self.seed >= 0:
            return self
        rng = rng or random.Random()
        return self.model_copy(update={"seed": rng.randint(0, MAX_SEED)})

    def sampler_inputs(self, model_set: ModelSet) -> Dict[str, Any]:
        """Literal KSampler inputs for this parameter set."""
        return {
            "seed": self.seed if self.seed >= 0 else FALLBACK_SEED,
            "steps": self.steps if self.steps is not None else model_set.steps,
            "cfg": self.cfg if self.cfg is not None else model_set.cfg,
            "sampler_name": self.sampler_name or model_set.sampler_name,
            "scheduler": self.scheduler or model_set.scheduler,
            "denoise": self.denoise,
        }
