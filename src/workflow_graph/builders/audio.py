"""Text-to-music pipeline builder (ACE-Step)."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from ..catalog import AUDIO, ModelCatalog
from ..models import Graph
from .base import SamplerParams


# output format -> save node kind
SAVE_NODES = {
    "mp3": "SaveAudioMP3",
    "flac": "SaveAudio",
    "opus": "SaveAudioOpus",
}

DEFAULT_QUALITY = {"mp3": "V0", "opus": "128k"}


class AudioParams(SamplerParams):
    """Parameters for a text-to-music graph."""

    tags: str = Field("pop, female voice, catchy melody", description="Style tags")
    lyrics: str = Field("", description="Song lyrics, may be empty for instrumentals")
    lyrics_strength: float = Field(0.99, ge=0, description="Lyrics conditioning strength")
    model_set: str = Field("ACE_STEP_V1_3_5B", description="Audio model set name")
    checkpoint: Optional[str] = Field(None, description="Checkpoint override")
    duration_s: float = Field(120.0, gt=0, description="Length of the generated audio")
    batch_size: int = Field(1, ge=1, description="Clips per batch")
    shift: Optional[float] = Field(None, description="ModelSamplingSD3 shift override")
    tonemap_multiplier: float = Field(1.0, description="Reinhard tonemap multiplier")
    output_format: Literal["mp3", "flac", "opus"] = Field("mp3", description="Output format")
    quality: Optional[str] = Field(None, description="Encoder quality for mp3/opus")
    filename_prefix: str = Field("audio/ComfyUI", description="Save node prefix")


def build_audio_graph(params: AudioParams, catalog: ModelCatalog) -> Graph:
    """
    Build the ACE-Step text-to-music graph.

    The negative conditioning is the zeroed-out positive conditioning, and
    the model passes through ModelSamplingSD3 and a tonemapped CFG
    operation before reaching the sampler.
    """
    model_set = catalog.get(AUDIO, params.model_set)
    graph = Graph()

    checkpoint = graph.add_node(
        "CheckpointLoaderSimple",
        {"ckpt_name": params.checkpoint or model_set.checkpoint or ""},
        outputs=["MODEL", "CLIP", "VAE"],
        title="Load Checkpoint",
    )
    latent = graph.add_node(
        "EmptyAceStepLatentAudio",
        {"seconds": params.duration_s, "batch_size": params.batch_size},
        outputs=["LATENT"],
    )
    encode = graph.add_node(
        "TextEncodeAceStepAudio",
        {
            "tags": params.tags,
            "lyrics": params.lyrics,
            "lyrics_strength": params.lyrics_strength,
        },
        outputs=["CONDITIONING"],
    )
    graph.connect(checkpoint.id, 1, encode.id, "clip")

    zero_out = graph.add_node("ConditioningZeroOut", outputs=["CONDITIONING"])
    graph.connect(encode.id, 0, zero_out.id, "conditioning")

    shift = params.shift if params.shift is not None else (model_set.shift or 5.0)
    sampling = graph.add_node("ModelSamplingSD3", {"shift": shift}, outputs=["MODEL"])
    graph.connect(checkpoint.id, 0, sampling.id, "model")

    tonemap = graph.add_node(
        "LatentOperationTonemapReinhard",
        {"multiplier": params.tonemap_multiplier},
        outputs=["LATENT_OPERATION"],
    )
    apply_cfg = graph.add_node("LatentApplyOperationCFG", outputs=["MODEL"])
    graph.connect(sampling.id, 0, apply_cfg.id, "model")
    graph.connect(tonemap.id, 0, apply_cfg.id, "operation")

    sampler = graph.add_node("KSampler", params.sampler_inputs(model_set), outputs=["LATENT"])
    graph.connect(apply_cfg.id, 0, sampler.id, "model")
    graph.connect(encode.id, 0, sampler.id, "positive")
    graph.connect(zero_out.id, 0, sampler.id, "negative")
    graph.connect(latent.id, 0, sampler.id, "latent_image")

    decode = graph.add_node("VAEDecodeAudio", outputs=["AUDIO"])
    graph.connect(sampler.id, 0, decode.id, "samples")
    graph.connect(checkpoint.id, 2, decode.id, "vae")

    save_inputs = {"filename_prefix": params.filename_prefix}
    if params.output_format != "flac":
        save_inputs["quality"] = params.quality or DEFAULT_QUALITY[params.output_format]
    save = graph.add_node(SAVE_NODES[params.output_format], save_inputs, title="Save Audio")
    graph.connect(decode.id, 0, save.id, "audio")

    return graph
