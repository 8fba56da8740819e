"""Text-to-image pipeline builder."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from ..catalog import IMAGE, ModelCatalog
from ..models import Graph
from .base import SamplerParams


class ImageParams(SamplerParams):
    """Parameters for a text-to-image graph."""

    positive_prompt: str = Field(
        "beautiful landscape, high quality, detailed",
        description="Positive prompt",
    )
    negative_prompt: str = Field("ugly, blurry, low quality", description="Negative prompt")
    model_set: str = Field("QWEN_IMAGE_FP8", description="Image model set name")
    checkpoint: Optional[str] = Field(None, description="Checkpoint override")
    lora: Optional[str] = Field(None, description="LoRA override")
    lora_strength: Optional[float] = Field(None, description="LoRA strength override")
    width: int = Field(1024, ge=16, description="Image width")
    height: int = Field(1024, ge=16, description="Image height")
    batch_size: int = Field(1, ge=1, description="Images per batch")
    filename_prefix: str = Field("image/ComfyUI", description="SaveImage prefix")


def build_image_graph(params: ImageParams, catalog: ModelCatalog) -> Graph:
    """
    Build checkpoint -> prompts -> KSampler -> VAEDecode -> SaveImage.

    When a LoRA is configured (on the model set or the params) a
    LoraLoaderModelOnly node is spliced into the model link feeding the
    sampler.
    """
    model_set = catalog.get(IMAGE, params.model_set)
    graph = Graph()

    checkpoint = graph.add_node(
        "CheckpointLoaderSimple",
        {"ckpt_name": params.checkpoint or model_set.checkpoint or ""},
        outputs=["MODEL", "CLIP", "VAE"],
        title="Load Checkpoint",
    )
    latent = graph.add_node(
        "EmptyLatentImage",
        {"width": params.width, "height": params.height, "batch_size": params.batch_size},
        outputs=["LATENT"],
    )
    positive = graph.add_node(
        "CLIPTextEncode",
        {"text": params.positive_prompt},
        outputs=["CONDITIONING"],
        title="Positive Prompt",
    )
    negative = graph.add_node(
        "CLIPTextEncode",
        {"text": params.negative_prompt},
        outputs=["CONDITIONING"],
        title="Negative Prompt",
    )
    graph.connect(checkpoint.id, 1, positive.id, "clip")
    graph.connect(checkpoint.id, 1, negative.id, "clip")

    sampler = graph.add_node(
        "KSampler",
        params.sampler_inputs(model_set),
        outputs=["LATENT"],
    )
    model_link = graph.connect(checkpoint.id, 0, sampler.id, "model")
    graph.connect(positive.id, 0, sampler.id, "positive")
    graph.connect(negative.id, 0, sampler.id, "negative")
    graph.connect(latent.id, 0, sampler.id, "latent_image")

    decode = graph.add_node("VAEDecode", outputs=["IMAGE"])
    graph.connect(sampler.id, 0, decode.id, "samples")
    graph.connect(checkpoint.id, 2, decode.id, "vae")

    save = graph.add_node(
        "SaveImage",
        {"filename_prefix": params.filename_prefix},
        title="Save Image",
    )
    graph.connect(decode.id, 0, save.id, "images")

    lora = params.lora or model_set.lora
    if lora:
        strength = (
            params.lora_strength if params.lora_strength is not None
            else model_set.lora_strength
        )
        graph.insert_between(
            model_link.id,
            "LoraLoaderModelOnly",
            "model",
            inputs={"lora_name": lora, "strength_model": strength},
            outputs=["MODEL"],
            title="LoRA",
        )

    return graph
