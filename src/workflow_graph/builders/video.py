"""Sound+image-to-video pipeline builder (WAN 2.2 s2v)."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from ..catalog import VIDEO, ModelCatalog
from ..models import Graph
from .base import SamplerParams


class VideoParams(SamplerParams):
    """
    Parameters for a video graph.

    `image_name` and `audio_name` are engine-side names returned by an
    upload, not local paths.
    """

    image_name: Optional[str] = Field(None, description="Uploaded reference image name")
    audio_name: Optional[str] = Field(None, description="Uploaded audio name")
    positive_prompt: str = Field("", description="Positive prompt")
    negative_prompt: str = Field("", description="Negative prompt")
    model_set: str = Field("WAN_2_2_4Steps", description="Video model set name")
    use_lora: bool = Field(True, description="Apply the model set's LoRA when it has one")
    lora_strength: Optional[float] = Field(None, description="LoRA strength override")
    shift: Optional[float] = Field(None, description="ModelSamplingSD3 shift override")
    width: int = Field(640, ge=16, description="Frame width")
    height: int = Field(640, ge=16, description="Frame height")
    length: int = Field(77, ge=1, description="Frames per chunk")
    batch_size: int = Field(1, ge=1, description="Videos per batch")
    fps: float = Field(16.0, gt=0, description="Output frame rate")
    filename_prefix: str = Field("video/ComfyUI", description="SaveVideo prefix")
    format: str = Field("mp4", description="SaveVideo container")
    codec: str = Field("h264", description="SaveVideo codec")


def build_video_graph(params: VideoParams, catalog: ModelCatalog) -> Graph:
    """
    Build the WAN sound-to-video graph.

    Optional branches:
    - audio: AudioEncoderLoader/LoadAudio/AudioEncoderEncode feed
      WanSoundImageToVideo and the audio track of CreateVideo
    - LoRA: LoraLoaderModelOnly spliced between UNETLoader and ModelSamplingSD3
    """
    if not params.image_name:
        raise ValueError("A reference image is required to build a video graph")

    model_set = catalog.get(VIDEO, params.model_set)
    graph = Graph()

    unet = graph.add_node(
        "UNETLoader",
        {"unet_name": model_set.unet or "", "weight_dtype": "default"},
        outputs=["MODEL"],
    )
    clip = graph.add_node(
        "CLIPLoader",
        {"clip_name": model_set.clip or "", "type": model_set.clip_type or "wan", "device": "default"},
        outputs=["CLIP"],
    )
    vae = graph.add_node("VAELoader", {"vae_name": model_set.vae or ""}, outputs=["VAE"])
    image = graph.add_node(
        "LoadImage",
        {"image": params.image_name},
        outputs=["IMAGE", "MASK"],
        title="Reference Image",
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
    graph.connect(clip.id, 0, positive.id, "clip")
    graph.connect(clip.id, 0, negative.id, "clip")

    shift = params.shift if params.shift is not None else (model_set.shift or 8.0)
    sampling = graph.add_node("ModelSamplingSD3", {"shift": shift}, outputs=["MODEL"])
    model_link = graph.connect(unet.id, 0, sampling.id, "model")

    s2v = graph.add_node(
        "WanSoundImageToVideo",
        {
            "width": params.width,
            "height": params.height,
            "length": params.length,
            "batch_size": params.batch_size,
        },
        outputs=[
            ("positive", "CONDITIONING"),
            ("negative", "CONDITIONING"),
            ("latent", "LATENT"),
        ],
    )
    graph.connect(positive.id, 0, s2v.id, "positive")
    graph.connect(negative.id, 0, s2v.id, "negative")
    graph.connect(vae.id, 0, s2v.id, "vae")
    graph.connect(image.id, 0, s2v.id, "ref_image")

    sampler = graph.add_node("KSampler", params.sampler_inputs(model_set), outputs=["LATENT"])
    graph.connect(sampling.id, 0, sampler.id, "model")
    graph.connect(s2v.id, 0, sampler.id, "positive")
    graph.connect(s2v.id, 1, sampler.id, "negative")
    graph.connect(s2v.id, 2, sampler.id, "latent_image")

    decode = graph.add_node("VAEDecode", outputs=["IMAGE"])
    graph.connect(sampler.id, 0, decode.id, "samples")
    graph.connect(vae.id, 0, decode.id, "vae")

    create = graph.add_node("CreateVideo", {"fps": params.fps}, outputs=["VIDEO"])
    graph.connect(decode.id, 0, create.id, "images")

    save = graph.add_node(
        "SaveVideo",
        {
            "filename_prefix": params.filename_prefix,
            "format": params.format,
            "codec": params.codec,
        },
        title="Save Video",
    )
    graph.connect(create.id, 0, save.id, "video")

    if params.audio_name:
        encoder_loader = graph.add_node(
            "AudioEncoderLoader",
            {"audio_encoder_name": model_set.audio_encoder or ""},
            outputs=["AUDIO_ENCODER"],
        )
        load_audio = graph.add_node(
            "LoadAudio",
            {"audio": params.audio_name},
            outputs=["AUDIO"],
            title="Driving Audio",
        )
        encode_audio = graph.add_node("AudioEncoderEncode", outputs=["AUDIO_ENCODER_OUTPUT"])
        graph.connect(encoder_loader.id, 0, encode_audio.id, "audio_encoder")
        graph.connect(load_audio.id, 0, encode_audio.id, "audio")
        graph.connect(encode_audio.id, 0, s2v.id, "audio_encoder_output")
        graph.connect(load_audio.id, 0, create.id, "audio")

    if params.use_lora and model_set.lora:
        strength = (
            params.lora_strength if params.lora_strength is not None
            else model_set.lora_strength
        )
        graph.insert_between(
            model_link.id,
            "LoraLoaderModelOnly",
            "model",
            inputs={"lora_name": model_set.lora, "strength_model": strength},
            outputs=["MODEL"],
            title="LoRA",
        )

    return graph
