"""Post-hoc PSNR/SSIM scoring of enhanced frames against their sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

import cv2
import numpy as np
import pandas as pd
from skimage.metrics import structural_similarity

from .frames import EnhancedFrame, Frame

logger = logging.getLogger(__name__)


def _match_size(reference: np.ndarray, candidate: np.ndarray) -> np.ndarray:
    if reference.shape[:2] == candidate.shape[:2]:
        return candidate
    height, width = reference.shape[:2]
    return cv2.resize(candidate, (width, height), interpolation=cv2.INTER_AREA)


def psnr(reference: np.ndarray, candidate: np.ndarray) -> float:
    """PSNR in dB; ``inf`` for identical buffers."""

    candidate = _match_size(reference, candidate)
    if np.array_equal(reference, candidate):
        return float("inf")
    return float(cv2.PSNR(reference, candidate))


def ssim(reference: np.ndarray, candidate: np.ndarray) -> float:
    """SSIM computed on luminance."""

    candidate = _match_size(reference, candidate)
    ref_gray = cv2.cvtColor(reference, cv2.COLOR_RGB2GRAY)
    cand_gray = cv2.cvtColor(candidate, cv2.COLOR_RGB2GRAY)
    # skimage needs an odd window no larger than the image.
    win = min(7, *ref_gray.shape)
    if win % 2 == 0:
        win -= 1
    if win < 3:
        return 1.0 if np.array_equal(ref_gray, cand_gray) else 0.0
    return float(structural_similarity(ref_gray, cand_gray, data_range=255, win_size=win))


def _finite_mean(values: Sequence[float]) -> float:
    finite = [v for v in values if np.isfinite(v)]
    if not finite:
        return float("inf") if values else float("nan")
    return float(np.mean(finite))


@dataclass(frozen=True)
class QualityReport:
    psnr: float
    ssim: float
    baseline_psnr: float
    baseline_ssim: float
    per_frame: pd.DataFrame

    def write_csv(self, path: Path) -> None:
        self.per_frame.to_csv(path, index=False)


def score(
    original_frames: Sequence[Frame],
    enhanced_frames: Sequence[EnhancedFrame],
) -> QualityReport:
    """Compare each enhanced frame to its source frame.

    The baseline compares every original frame with its successor, giving a
    reference for how much frames differ from one another anyway.
    """

    pairs: List[Tuple[Frame, EnhancedFrame]] = list(zip(original_frames, enhanced_frames))
    if not pairs:
        raise ValueError("at least one frame pair is required")
    rows = []
    for original, enhanced in pairs:
        rows.append(
            {
                "frame_idx": original.sequence_index,
                "timestamp_s": original.timestamp_s,
                "psnr": psnr(original.pixels, enhanced.pixels),
                "ssim": ssim(original.pixels, enhanced.pixels),
            }
        )
    per_frame = pd.DataFrame(rows).sort_values(by=["frame_idx"]).reset_index(drop=True)

    baseline_psnr: List[float] = []
    baseline_ssim: List[float] = []
    for current, following in zip(original_frames, original_frames[1:]):
        baseline_psnr.append(psnr(current.pixels, following.pixels))
        baseline_ssim.append(ssim(current.pixels, following.pixels))

    report = QualityReport(
        psnr=_finite_mean(per_frame["psnr"].tolist()),
        ssim=float(per_frame["ssim"].mean()),
        baseline_psnr=_finite_mean(baseline_psnr),
        baseline_ssim=float(np.mean(baseline_ssim)) if baseline_ssim else float("nan"),
        per_frame=per_frame,
    )
    logger.info(
        "Quality: PSNR %.2f dB, SSIM %.4f (baseline %.2f dB, %.4f)",
        report.psnr, report.ssim, report.baseline_psnr, report.baseline_ssim,
    )
    return report
