"""Tests for the per-kind graph builders."""
import random

import pytest

from workflow_graph import (
    AudioParams,
    ImageParams,
    LinkRef,
    VideoParams,
    build_audio_graph,
    build_image_graph,
    build_video_graph,
    default_catalog,
    flatten_graph,
    validate_graph,
)
from workflow_graph.builders import FALLBACK_SEED


@pytest.fixture
def catalog():
    return default_catalog()


def _kinds(graph):
    return [node.kind for node in graph.nodes]


def _node(graph, kind):
    return next(node for node in graph.nodes if node.kind == kind)


def _source_of(graph, node, input_name):
    link = graph.incoming_link(node.id, input_name)
    return graph.get_node(link.source_node)


class TestDeterminism:
    @pytest.mark.parametrize(
        "build,params",
        [
            (build_image_graph, ImageParams(seed=7)),
            (build_image_graph, ImageParams(seed=7, model_set="QWEN_IMAGE_FP8_LIGHTNING")),
            (build_audio_graph, AudioParams(seed=7, lyrics="la la")),
            (build_video_graph, VideoParams(seed=7, image_name="ref.png", audio_name="a.wav")),
        ],
    )
    def test_same_params_same_graph(self, catalog, build, params):
        first = build(params, catalog)
        second = build(params, catalog)

        assert first == second
        assert [node.id for node in first.nodes] == list(range(1, len(first.nodes) + 1))
        assert sorted(link.id for link in first.links) == list(range(1, len(first.links) + 1))


class TestImageBuilder:
    def test_basic_pipeline(self, catalog):
        graph = build_image_graph(
            ImageParams(positive_prompt="a lighthouse", seed=42, model_set="SD_1_5"),
            catalog,
        )

        assert _kinds(graph) == [
            "CheckpointLoaderSimple",
            "EmptyLatentImage",
            "CLIPTextEncode",
            "CLIPTextEncode",
            "KSampler",
            "VAEDecode",
            "SaveImage",
        ]
        assert validate_graph(graph) == []

        sampler = _node(graph, "KSampler")
        assert sampler.inputs["seed"] == 42
        assert sampler.inputs["steps"] == 20
        assert sampler.inputs["cfg"] == 7.0
        assert sampler.inputs["sampler_name"] == "euler_ancestral"
        assert _source_of(graph, sampler, "model").kind == "CheckpointLoaderSimple"
        assert graph.get_node(3).inputs["text"] == "a lighthouse"

    def test_explicit_sampler_settings_override_model_set(self, catalog):
        graph = build_image_graph(ImageParams(steps=30, cfg=4.5, scheduler="karras"), catalog)
        sampler = _node(graph, "KSampler")
        assert (sampler.inputs["steps"], sampler.inputs["cfg"], sampler.inputs["scheduler"]) == (
            30, 4.5, "karras",
        )

    def test_lora_inserted_on_model_link(self, catalog):
        plain = build_image_graph(ImageParams(seed=1, model_set="QWEN_IMAGE_FP8"), catalog)
        with_lora = build_image_graph(
            ImageParams(seed=1, model_set="QWEN_IMAGE_FP8_LIGHTNING"), catalog
        )

        assert "LoraLoaderModelOnly" not in _kinds(plain)
        lora = _node(with_lora, "LoraLoaderModelOnly")
        assert lora.inputs["lora_name"] == "Qwen-Image-Lightning-8steps-V1.0.safetensors"
        assert lora.inputs["strength_model"] == 1.0

        sampler = _node(with_lora, "KSampler")
        assert _source_of(with_lora, sampler, "model") is lora
        assert _source_of(with_lora, lora, "model").kind == "CheckpointLoaderSimple"

        # the sampler keeps the same model link id; every original link survives
        assert sampler.inputs["model"] == _node(plain, "KSampler").inputs["model"]
        plain_ids = {link.id for link in plain.links}
        assert plain_ids <= {link.id for link in with_lora.links}
        assert len(with_lora.links) == len(plain.links) + 1
        assert validate_graph(with_lora) == []

    def test_lora_from_params(self, catalog):
        graph = build_image_graph(
            ImageParams(model_set="SD_1_5", lora="style.safetensors", lora_strength=0.6),
            catalog,
        )
        lora = _node(graph, "LoraLoaderModelOnly")
        assert lora.inputs["lora_name"] == "style.safetensors"
        assert lora.inputs["strength_model"] == 0.6
        assert isinstance(lora.inputs["model"], LinkRef)

    def test_unresolved_seed_uses_fallback(self, catalog):
        graph = build_image_graph(ImageParams(seed=-1), catalog)
        assert _node(graph, "KSampler").inputs["seed"] == FALLBACK_SEED

    def test_unknown_model_set(self, catalog):
        with pytest.raises(KeyError):
            build_image_graph(ImageParams(model_set="MISSING"), catalog)


class TestAudioBuilder:
    def test_pipeline_wiring(self, catalog):
        graph = build_audio_graph(AudioParams(seed=3, tags="lofi", lyrics="[verse] hi"), catalog)

        assert validate_graph(graph) == []
        sampler = _node(graph, "KSampler")
        assert _source_of(graph, sampler, "model").kind == "LatentApplyOperationCFG"
        assert _source_of(graph, sampler, "positive").kind == "TextEncodeAceStepAudio"
        assert _source_of(graph, sampler, "negative").kind == "ConditioningZeroOut"
        assert _source_of(graph, sampler, "latent_image").kind == "EmptyAceStepLatentAudio"
        assert sampler.inputs["steps"] == 50
        assert sampler.inputs["cfg"] == 5.0
        assert sampler.inputs["scheduler"] == "simple"

        apply_cfg = _node(graph, "LatentApplyOperationCFG")
        assert _source_of(graph, apply_cfg, "model").kind == "ModelSamplingSD3"
        assert _source_of(graph, apply_cfg, "operation").kind == "LatentOperationTonemapReinhard"
        assert _node(graph, "ModelSamplingSD3").inputs["shift"] == 5.0

        encode = _node(graph, "TextEncodeAceStepAudio")
        assert encode.inputs["tags"] == "lofi"
        assert encode.inputs["lyrics_strength"] == 0.99

        save = _node(graph, "SaveAudioMP3")
        assert save.inputs["quality"] == "V0"
        assert save.inputs["filename_prefix"] == "audio/ComfyUI"
        assert _source_of(graph, save, "audio").kind == "VAEDecodeAudio"

    @pytest.mark.parametrize(
        "fmt,kind,quality",
        [("flac", "SaveAudio", None), ("opus", "SaveAudioOpus", "128k")],
    )
    def test_output_formats(self, catalog, fmt, kind, quality):
        graph = build_audio_graph(AudioParams(output_format=fmt), catalog)
        save = graph.nodes[-1]
        assert save.kind == kind
        assert save.inputs.get("quality") == quality

    def test_invalid_format_rejected(self):
        with pytest.raises(ValueError):
            AudioParams(output_format="wav")


class TestVideoBuilder:
    def test_image_only(self, catalog):
        graph = build_video_graph(VideoParams(image_name="ref.png", seed=5), catalog)

        kinds = _kinds(graph)
        assert "LoadAudio" not in kinds
        assert "AudioEncoderLoader" not in kinds
        assert validate_graph(graph) == []

        assert _node(graph, "LoadImage").inputs["image"] == "ref.png"
        assert _node(graph, "CLIPLoader").inputs["type"] == "wan"

        s2v = _node(graph, "WanSoundImageToVideo")
        assert "audio_encoder_output" not in s2v.inputs
        assert (s2v.inputs["width"], s2v.inputs["height"], s2v.inputs["length"]) == (640, 640, 77)

        sampler = _node(graph, "KSampler")
        assert sampler.inputs["steps"] == 4
        assert sampler.inputs["sampler_name"] == "uni_pc"
        assert graph.incoming_link(sampler.id, "latent_image").source_output_index == 2

        save = _node(graph, "SaveVideo")
        assert save.inputs["codec"] == "h264"
        assert save.inputs["format"] == "mp4"

    def test_audio_branch(self, catalog):
        graph = build_video_graph(VideoParams(image_name="ref.png", audio_name="voice.wav"), catalog)

        assert _node(graph, "LoadAudio").inputs["audio"] == "voice.wav"
        s2v = _node(graph, "WanSoundImageToVideo")
        assert _source_of(graph, s2v, "audio_encoder_output").kind == "AudioEncoderEncode"
        create = _node(graph, "CreateVideo")
        assert _source_of(graph, create, "audio").kind == "LoadAudio"
        assert validate_graph(graph) == []

    def test_lora_between_unet_and_sampling(self, catalog):
        graph = build_video_graph(VideoParams(image_name="ref.png"), catalog)

        sampling = _node(graph, "ModelSamplingSD3")
        lora = _source_of(graph, sampling, "model")
        assert lora.kind == "LoraLoaderModelOnly"
        assert _source_of(graph, lora, "model").kind == "UNETLoader"

    def test_lora_skipped(self, catalog):
        without = build_video_graph(VideoParams(image_name="ref.png", use_lora=False), catalog)
        standard = build_video_graph(
            VideoParams(image_name="ref.png", model_set="WAN_2_2_20Steps"), catalog
        )
        assert "LoraLoaderModelOnly" not in _kinds(without)
        assert "LoraLoaderModelOnly" not in _kinds(standard)

    def test_image_required(self, catalog):
        with pytest.raises(ValueError, match="reference image"):
            build_video_graph(VideoParams(), catalog)

    def test_flattens_with_links_resolved(self, catalog):
        graph = build_video_graph(VideoParams(image_name="ref.png", audio_name="a.wav"), catalog)
        payload = flatten_graph(graph, string_refs=True)
        assert len(payload) == len(graph.nodes)
        sampler_id = str(_node(graph, "KSampler").id)
        assert payload[sampler_id]["inputs"]["positive"][1] == 0
        assert payload[sampler_id]["inputs"]["negative"][1] == 1


class TestSeedResolution:
    def test_negative_seed_resolved(self):
        params = ImageParams(seed=-1).with_resolved_seed(random.Random(1))
        assert params.seed >= 0
        assert isinstance(params, ImageParams)

    def test_explicit_seed_kept(self):
        params = AudioParams(seed=99)
        assert params.with_resolved_seed() is params

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValueError):
            ImageParams(promt="typo")


def test_builder_inputs_use_link_refs(catalog):
    graph = build_image_graph(ImageParams(), catalog)
    decode = _node(graph, "VAEDecode")
    assert isinstance(decode.inputs["samples"], LinkRef)
    assert isinstance(decode.inputs["vae"], LinkRef)
