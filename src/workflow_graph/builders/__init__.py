"""Per-kind graph builders. Each is a pure function of (params, catalog)."""

from .audio import AudioParams, build_audio_graph
from .base import FALLBACK_SEED, SamplerParams
from .image import ImageParams, build_image_graph
from .video import VideoParams, build_video_graph

__all__ = [
    "AudioParams",
    "FALLBACK_SEED",
    "ImageParams",
    "SamplerParams",
    "VideoParams",
    "build_audio_graph",
    "build_image_graph",
    "build_video_graph",
]
