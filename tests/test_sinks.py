from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from tile_upscaler.errors import InvalidGeometry
from tile_upscaler.frames import EnhancedFrame
from tile_upscaler.sinks import VideoFrameSink, write_image


class FakeWriter:
    def __init__(self, path, fourcc, fps, size, opened=True) -> None:
        self.path = path
        self.fps = fps
        self.size = size
        self.opened = opened
        self.frames = []
        self.released = False

    def isOpened(self) -> bool:  # noqa: N802 - mimics OpenCV API
        return self.opened

    def write(self, frame: np.ndarray) -> None:
        self.frames.append(frame)

    def release(self) -> None:
        self.released = True


def install_writer(monkeypatch, opened: bool = True) -> list:
    writers = []

    def factory(path, fourcc, fps, size):
        writer = FakeWriter(path, fourcc, fps, size, opened)
        writers.append(writer)
        return writer

    monkeypatch.setattr("cv2.VideoWriter", factory)
    return writers


def frame(index: int, ts: float) -> EnhancedFrame:
    pixels = np.zeros((4, 6, 3), dtype=np.uint8)
    pixels[..., 0] = 255
    return EnhancedFrame(pixels, ts, index)


def test_video_sink_writes_bgr_frames_and_timing(tmp_path, monkeypatch) -> None:
    writers = install_writer(monkeypatch)
    timing = tmp_path / "timing.csv"
    sink = VideoFrameSink(tmp_path / "out.mp4", 5.0, (6, 4), timing_csv=timing)
    sink.write(frame(1, 0.2), 0.2)
    sink.write(frame(0, 0.0), 0.0)
    sink.close()

    writer = writers[0]
    assert writer.fps == 5.0 and writer.size == (6, 4)
    assert writer.released
    assert len(writer.frames) == 2
    assert np.all(writer.frames[0][..., 2] == 255)  # red moved to BGR slot
    metadata = pd.read_csv(timing)
    assert list(metadata["frame_idx"]) == [0, 1]
    assert metadata.loc[1, "presented_at_s"] == pytest.approx(0.2)


def test_video_sink_rejects_wrong_size(tmp_path, monkeypatch) -> None:
    install_writer(monkeypatch)
    sink = VideoFrameSink(tmp_path / "out.mp4", 5.0, (8, 8))
    with pytest.raises(InvalidGeometry):
        sink.write(frame(0, 0.0), 0.0)


def test_video_sink_without_timing_csv(tmp_path, monkeypatch) -> None:
    install_writer(monkeypatch)
    sink = VideoFrameSink(tmp_path / "out.mp4", 5.0, (6, 4))
    sink.write(frame(0, 0.0), 0.0)
    sink.close()
    assert sink.frames_written == 1
    assert not list(tmp_path.glob("*.csv"))


def test_video_sink_writer_not_opened(tmp_path, monkeypatch) -> None:
    install_writer(monkeypatch, opened=False)
    with pytest.raises(RuntimeError):
        VideoFrameSink(tmp_path / "out.mp4", 5.0, (6, 4))


def test_write_image_uses_suffix(tmp_path, monkeypatch) -> None:
    writes = []

    def fake_imwrite(path: str, image: np.ndarray, params=None):  # type: ignore[unused-argument]
        writes.append((Path(path), params))
        return True

    monkeypatch.setattr("cv2.imwrite", fake_imwrite)
    pixels = np.zeros((2, 2, 3), dtype=np.uint8)
    write_image(tmp_path / "a.png", pixels)
    write_image(tmp_path / "b.jpg", pixels, jpg_quality=80)
    assert writes[0][1] is None
    assert writes[1][1][1] == 80


def test_write_image_failure(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr("cv2.imwrite", lambda *args: False)
    with pytest.raises(RuntimeError):
        write_image(tmp_path / "a.png", np.zeros((2, 2, 3), dtype=np.uint8))
