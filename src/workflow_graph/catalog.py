"""
Model Catalog - immutable registry of compatible model sets.

Builders receive a catalog explicitly; there is no module-level mutable
lookup table. `with_model_set()` returns a new catalog instead of editing
the current one.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


IMAGE = "image"
AUDIO = "audio"
VIDEO = "video"


class ModelSet(BaseModel):
    """A group of model files that are known to work together."""
    model_config = ConfigDict(frozen=True)

    display_name: str = Field("", description="Human readable name")
    checkpoint: Optional[str] = Field(None, description="All-in-one checkpoint file")
    unet: Optional[str] = Field(None, description="Diffusion model file")
    clip: Optional[str] = Field(None, description="Text encoder file")
    clip_type: Optional[str] = Field(None, description="CLIPLoader type")
    vae: Optional[str] = Field(None, description="VAE file")
    audio_encoder: Optional[str] = Field(None, description="Audio encoder file")
    lora: Optional[str] = Field(None, description="LoRA applied to the model")
    lora_strength: float = Field(1.0, description="LoRA model strength")
    shift: Optional[float] = Field(None, description="ModelSamplingSD3 shift")
    steps: int = Field(20, description="Default sampler steps")
    cfg: float = Field(7.0, description="Default CFG scale")
    sampler_name: str = Field("euler", description="Recommended sampler")
    scheduler: str = Field("normal", description="Recommended scheduler")


class ModelCatalog:
    """
    Read-only mapping of pipeline kind -> model set name -> ModelSet.
    """

    def __init__(self, model_sets: Optional[Mapping[str, Mapping[str, ModelSet]]] = None):
        frozen: Dict[str, Mapping[str, ModelSet]] = {}
        for kind, sets in (model_sets or {}).items():
            frozen[kind] = MappingProxyType(dict(sets))
        self._sets: Mapping[str, Mapping[str, ModelSet]] = MappingProxyType(frozen)

    def get(self, kind: str, name: str) -> ModelSet:
        """
        Look up a model set.

        Raises:
            KeyError: If the kind or name is unknown
        """
        sets = self._sets.get(kind)
        if sets is None or name not in sets:
            raise KeyError(f"Unknown {kind} model set: {name}")
        return sets[name]

    def names(self, kind: str) -> list:
        return list(self._sets.get(kind, {}))

    def kinds(self) -> Iterator[str]:
        return iter(self._sets)

    def with_model_set(self, kind: str, name: str, model_set: ModelSet) -> "ModelCatalog":
        """Return a new catalog with one model set added or replaced."""
        merged = {k: dict(v) for k, v in self._sets.items()}
        merged.setdefault(kind, {})[name] = model_set
        return ModelCatalog(merged)

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) != 2:
            return False
        kind, name = item
        return name in self._sets.get(kind, {})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModelCatalog):
            return NotImplemented
        return {k: dict(v) for k, v in self._sets.items()} == {
            k: dict(v) for k, v in other._sets.items()
        }

    def __repr__(self) -> str:
        counts = ", ".join(f"{kind}={len(sets)}" for kind, sets in self._sets.items())
        return f"ModelCatalog({counts})"


def default_catalog() -> ModelCatalog:
    """Catalog with the model sets shipped by default."""
    qwen = dict(
        checkpoint="qwen_image_fp8_e4m3fn.safetensors",
        unet="qwen_image_fp8_e4m3fn.safetensors",
        clip="qwen_2.5_vl_7b_fp8_scaled.safetensors",
        clip_type="qwen_image",
        vae="qwen_image_vae.safetensors",
        shift=3.1,
        sampler_name="euler",
        scheduler="simple",
    )
    wan = dict(
        unet="wan2.2_s2v_14B_fp8_scaled.safetensors",
        clip="umt5_xxl_fp8_e4m3fn_scaled.safetensors",
        clip_type="wan",
        vae="wan_2.1_vae.safetensors",
        audio_encoder="wav2vec2_large_english_fp16.safetensors",
        shift=8.0,
        sampler_name="uni_pc",
        scheduler="simple",
    )

    return ModelCatalog({
        IMAGE: {
            "QWEN_IMAGE_FP8": ModelSet(
                display_name="Qwen-Image FP8 (High Quality)",
                steps=20, cfg=2.5, **qwen,
            ),
            "QWEN_IMAGE_FP8_LIGHTNING": ModelSet(
                display_name="Qwen-Image FP8 Lightning (Fast)",
                lora="Qwen-Image-Lightning-8steps-V1.0.safetensors",
                lora_strength=1.0,
                steps=8, cfg=1.0, **qwen,
            ),
            "SD_1_5": ModelSet(
                display_name="Stable Diffusion 1.5 (Classic)",
                checkpoint="v1-5-pruned-emaonly.safetensors",
                clip_type="sd1",
                vae="vae-ft-mse-840000-ema-pruned.safetensors",
                steps=20, cfg=7.0,
                sampler_name="euler_ancestral", scheduler="normal",
            ),
            "SDXL_TURBO": ModelSet(
                display_name="SDXL Turbo (Ultra Fast)",
                checkpoint="sd_xl_turbo_1.0_fp16.safetensors",
                clip_type="sdxl",
                vae="sdxl_vae.safetensors",
                steps=4, cfg=1.0,
                sampler_name="euler_ancestral", scheduler="normal",
            ),
        },
        AUDIO: {
            "ACE_STEP_V1_3_5B": ModelSet(
                display_name="ACE-Step v1 3.5B",
                checkpoint="ace_step_v1_3.5b.safetensors",
                shift=5.0,
                steps=50, cfg=5.0,
                sampler_name="euler", scheduler="simple",
            ),
        },
        VIDEO: {
            "WAN_2_2_4Steps": ModelSet(
                display_name="WAN 2.2 (4 Steps Lightning)",
                lora="wan2.2_t2v_lightx2v_4steps_lora_v1.1_high_noise.safetensors",
                lora_strength=1.0,
                steps=4, cfg=1.0, **wan,
            ),
            "WAN_2_2_20Steps": ModelSet(
                display_name="WAN 2.2 (20 Steps Standard)",
                steps=20, cfg=6.0, **wan,
            ),
            "WAN_2_2_BF16": ModelSet(
                display_name="WAN 2.2 BF16 (High Quality)",
                steps=20, cfg=6.0,
                **{**wan, "unet": "wan2.2_s2v_14B_bf16.safetensors"},
            ),
        },
    })
