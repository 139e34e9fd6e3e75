from typing import List, Tuple

import cv2
import numpy as np
import pytest

from tile_upscaler.frame_source import OpenCVFrameSource, read_image


class FakeCapture:
    def __init__(self, frames: List[np.ndarray], fps: float, *, opened: bool = True,
                 timestamps: List[float] = None, report_count: bool = True) -> None:
        self.frames = frames
        self.fps = fps
        self.opened = opened
        self.timestamps = timestamps or [i / fps for i in range(len(frames))]
        self.report_count = report_count
        self.index = 0
        self.released = False

    def isOpened(self) -> bool:  # noqa: N802 - mimics OpenCV API
        return self.opened

    def get(self, prop_id: int) -> float:  # noqa: N802 - mimics OpenCV API
        if prop_id == cv2.CAP_PROP_FPS:
            return self.fps
        if prop_id == cv2.CAP_PROP_FRAME_COUNT:
            return len(self.frames) if self.report_count else 0
        if prop_id == cv2.CAP_PROP_FRAME_WIDTH:
            return self.frames[0].shape[1]
        if prop_id == cv2.CAP_PROP_FRAME_HEIGHT:
            return self.frames[0].shape[0]
        if prop_id == cv2.CAP_PROP_POS_MSEC:
            return self.timestamps[max(self.index - 1, 0)] * 1000.0
        return 0.0

    def grab(self) -> bool:
        if self.index >= len(self.frames):
            return False
        self.index += 1
        return True

    def read(self) -> Tuple[bool, np.ndarray]:
        if not self.grab():
            return False, np.empty((0, 0, 3), dtype=np.uint8)
        return True, self.frames[self.index - 1]

    def release(self) -> None:
        self.released = True


def bgr_frames(count: int) -> List[np.ndarray]:
    frames = []
    for i in range(count):
        frame = np.zeros((4, 6, 3), dtype=np.uint8)
        frame[..., 0] = i  # blue
        frame[..., 2] = 200  # red
        frames.append(frame)
    return frames


def install_capture(monkeypatch, *args, **kwargs) -> list:
    opened = []

    def factory(_):
        cap = FakeCapture(*args, **kwargs)
        opened.append(cap)
        return cap

    monkeypatch.setattr("cv2.VideoCapture", factory)
    return opened


def test_info_and_frame_rate(tmp_path, monkeypatch) -> None:
    path = tmp_path / "video.mp4"
    path.write_bytes(b"fake")
    install_capture(monkeypatch, bgr_frames(40), 25.0)
    source = OpenCVFrameSource(path, fps_sample_count=20)
    info = source.info()
    assert info["fps"] == 25.0
    assert info["frame_count"] == 40
    assert info["duration_s"] == pytest.approx(1.6)
    assert source.estimate_frame_rate() == 25


def test_frame_rate_uses_decoded_timestamps(tmp_path, monkeypatch) -> None:
    path = tmp_path / "video.mp4"
    path.write_bytes(b"fake")
    stamps = [i * 0.1 for i in range(20)]
    stamps[7] += 0.04
    install_capture(monkeypatch, bgr_frames(20), 30.0, timestamps=stamps)
    assert OpenCVFrameSource(path, fps_sample_count=15).estimate_frame_rate() == 10


def test_extract_frames_on_uniform_grid(tmp_path, monkeypatch) -> None:
    path = tmp_path / "video.mp4"
    path.write_bytes(b"fake")
    opened = install_capture(monkeypatch, bgr_frames(10), 5.0)
    progress = []
    sequence = OpenCVFrameSource(path, fps_sample_count=10).extract_frames(progress.append)
    assert sequence.fps == 5
    assert sequence.duration_s == pytest.approx(2.0)
    assert (sequence.width, sequence.height) == (6, 4)
    assert [f.sequence_index for f in sequence.frames] == list(range(10))
    stamps = [f.timestamp_s for f in sequence.frames]
    assert stamps == pytest.approx([i * 0.2 for i in range(10)])
    first = sequence.frames[3].pixels
    assert first[0, 0, 0] == 200 and first[0, 0, 2] == 3  # converted to RGB
    assert progress[-1] == pytest.approx(1.0)
    assert all(cap.released for cap in opened)


def test_extract_picks_nearest_decoded_frame(tmp_path, monkeypatch) -> None:
    path = tmp_path / "video.mp4"
    path.write_bytes(b"fake")
    # 10 fps grid over frames decoded at 20 fps: every other frame is kept.
    stamps = [i * 0.05 for i in range(20)]
    install_capture(monkeypatch, bgr_frames(20), 20.0, timestamps=stamps)
    source = OpenCVFrameSource(path, fps_sample_count=10)
    monkeypatch.setattr(source, "estimate_frame_rate", lambda: 10)
    sequence = source.extract_frames()
    assert len(sequence.frames) == 10
    assert [int(f.pixels[0, 0, 2]) for f in sequence.frames] == list(range(0, 20, 2))


def test_extract_counts_frames_when_container_has_no_count(tmp_path, monkeypatch) -> None:
    path = tmp_path / "video.mp4"
    path.write_bytes(b"fake")
    install_capture(monkeypatch, bgr_frames(12), 4.0, report_count=False)
    sequence = OpenCVFrameSource(path, fps_sample_count=10).extract_frames()
    assert sequence.duration_s == pytest.approx(3.0)
    assert len(sequence.frames) == 12


def test_source_raises_when_capture_fails(tmp_path, monkeypatch) -> None:
    path = tmp_path / "video.mp4"
    path.write_bytes(b"fake")
    install_capture(monkeypatch, [], 30.0, opened=False)
    with pytest.raises(RuntimeError):
        OpenCVFrameSource(path)


def test_source_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        OpenCVFrameSource(tmp_path / "missing.mp4")


def test_read_image_converts_to_rgb(tmp_path, monkeypatch) -> None:
    path = tmp_path / "still.png"
    path.write_bytes(b"fake")
    bgr = np.zeros((2, 2, 3), dtype=np.uint8)
    bgr[..., 0] = 255
    monkeypatch.setattr("cv2.imread", lambda p, flags=None: bgr)
    rgb = read_image(path)
    assert np.all(rgb[..., 2] == 255)
    assert np.all(rgb[..., 0] == 0)


def test_read_image_undecodable(tmp_path, monkeypatch) -> None:
    path = tmp_path / "still.png"
    path.write_bytes(b"fake")
    monkeypatch.setattr("cv2.imread", lambda p, flags=None: None)
    with pytest.raises(RuntimeError):
        read_image(path)
