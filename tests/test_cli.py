import subprocess
from pathlib import Path

import numpy as np
import pytest

from tile_upscaler import cli
from tile_upscaler.audio import FfmpegAudioExtractor
from tile_upscaler.config import EngineTarget, MergeMode
from tile_upscaler.errors import InferenceFailure
from tile_upscaler.media import MediaInfo


def test_defaults_map_to_config() -> None:
    cfg = cli.config_from_args(cli.parse_args(["clip.mp4", "-o", "big.mp4"]))
    assert cfg.input_path == Path("clip.mp4")
    assert cfg.output_path == Path("big.mp4")
    assert cfg.model_path is None
    assert cfg.pace_batches
    assert cfg.audio_delay_s == pytest.approx(0.01)
    assert cfg.duration_tolerance_s == pytest.approx(0.05)


def test_flags_map_to_config() -> None:
    args = cli.parse_args([
        "clip.mp4", "-o", "big.mp4",
        "--model", "x4.onnx", "--strict-model",
        "--tile", "128", "--overlap", "8", "--merge", "feather",
        "--target", "cuda_fp16", "--threads", "4", "--bgr",
        "--batch", "3", "--tile-workers", "5", "--no-pace",
        "--audio-delay-ms", "25", "--tolerance-ms", "80", "--realtime",
        "--metrics", "m.csv",
    ])
    cfg = cli.config_from_args(args)
    assert cfg.model_path == Path("x4.onnx")
    assert cfg.fail_on_missing_model
    assert (cfg.tile_size, cfg.tile_overlap) == (128, 8)
    assert cfg.merge_mode is MergeMode.FEATHER
    assert cfg.engine.target is EngineTarget.CUDA_FP16
    assert cfg.engine.num_threads == 4
    assert cfg.engine.swap_rb
    assert (cfg.batch_size, cfg.max_concurrent_tiles) == (3, 5)
    assert not cfg.pace_batches
    assert cfg.audio_delay_s == pytest.approx(0.025)
    assert cfg.duration_tolerance_s == pytest.approx(0.08)
    assert cfg.realtime_mux
    assert cfg.metrics_csv == Path("m.csv")


class FakeEnhancer:
    def enhance_image(self, pixels: np.ndarray) -> np.ndarray:
        return pixels


def test_main_routes_images(monkeypatch, capsys) -> None:
    seen = {}

    def fake_enhance_image_file(input_path, output_path, enhancer):
        seen["paths"] = (input_path, output_path)
        return {"width": 4.0}

    monkeypatch.setattr(cli, "build_enhancer", lambda cfg, executor: FakeEnhancer())
    monkeypatch.setattr(cli, "enhance_image_file", fake_enhance_image_file)
    cli.main(["photo.PNG", "-o", "big.png"])
    assert seen["paths"] == (Path("photo.PNG"), Path("big.png"))
    assert "Done." in capsys.readouterr().out


def test_main_exits_on_pipeline_error(monkeypatch) -> None:
    class FailingPipeline:
        def run(self, on_progress):
            raise InferenceFailure("bad tensor", tile_index=1)

    monkeypatch.setattr(cli, "build_pipeline", lambda cfg, executor: FailingPipeline())
    with pytest.raises(SystemExit) as info:
        cli.main(["clip.mp4", "-o", "big.mp4"])
    assert info.value.code == 1


def test_main_exits_when_ffmpeg_is_missing(monkeypatch) -> None:
    monkeypatch.setattr("shutil.which", lambda name: None)
    with pytest.raises(SystemExit) as info:
        cli.main(["clip.mp4", "-o", "big.mp4"])
    assert info.value.code == 1


def test_main_exits_on_audio_extraction_error(tmp_path, monkeypatch) -> None:
    extractor = FfmpegAudioExtractor(prober=lambda ffprobe, path: MediaInfo(2.0, True, "opus"))

    class AudioStagePipeline:
        def run(self, on_progress):
            extractor.extract(tmp_path / "clip.mp4", tmp_path)

    monkeypatch.setattr(
        "tile_upscaler.audio.run_subprocess",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 1, "", "no encoder"),
    )
    monkeypatch.setattr(cli, "build_pipeline", lambda cfg, executor: AudioStagePipeline())
    with pytest.raises(SystemExit) as info:
        cli.main(["clip.mp4", "-o", "big.mp4"])
    assert info.value.code == 1
