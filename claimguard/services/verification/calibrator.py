"""
Confidence calibrator

Learns whether reported confidence predicts correctness. Feedback data
points are the source of truth; the bucketed model is rebuilt from all of
them on recalibration and persisted next to them in one JSON document.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
from pydantic import ValidationError

from claimguard.models import (
    CalibrationBucket,
    CalibrationDataPoint,
    CalibrationModel,
    ClaimType,
    StoredCalibrationData,
    VerificationSource,
)

logger = logging.getLogger(__name__)

BUCKET_BOUNDARIES = (0.5, 0.6, 0.7, 0.8, 0.9, 0.95, 1.0)

# Share of the bucket-based estimate when blending in per-claim-type accuracy.
# An empirical tunable, not a derived quantity.
BUCKET_BLEND_WEIGHT = 0.7


@dataclass
class CalibrationConfig:
    bucket_boundaries: Sequence[float] = BUCKET_BOUNDARIES
    min_samples_per_bucket: int = 10
    recalibrate_every: int = 50
    data_path: Optional[Path] = None


@dataclass
class AccuracyStat:
    accuracy: float
    count: int


@dataclass
class CalibrationStats:
    total_data_points: int
    overall_accuracy: float
    brier_score: float
    calibration_error: float
    by_claim_type: Dict[str, AccuracyStat] = field(default_factory=dict)
    by_source: Dict[str, AccuracyStat] = field(default_factory=dict)


def build_buckets(
    confidences: np.ndarray,
    outcomes: np.ndarray,
    boundaries: Sequence[float] = BUCKET_BOUNDARIES,
) -> List[CalibrationBucket]:
    """
    Partition points into fixed bins.

    Bins are half-open ``[min, max)`` except the last, which is closed so a
    reported confidence of exactly 1.0 is counted.
    """
    buckets: List[CalibrationBucket] = []
    last = len(boundaries) - 2
    for index in range(len(boundaries) - 1):
        low, high = boundaries[index], boundaries[index + 1]
        if index == last:
            mask = (confidences >= low) & (confidences <= high)
        else:
            mask = (confidences >= low) & (confidences < high)

        total = int(mask.sum())
        true_positives = int(outcomes[mask].sum()) if total else 0
        buckets.append(
            CalibrationBucket(
                min_confidence=low,
                max_confidence=high,
                midpoint=(low + high) / 2,
                total=total,
                true_positives=true_positives,
                false_positives=total - true_positives,
                actual_accuracy=true_positives / total if total else 0.0,
            )
        )
    return buckets


def brier_score(confidences: np.ndarray, outcomes: np.ndarray) -> float:
    if confidences.size == 0:
        return 0.0
    return float(np.mean((confidences - outcomes) ** 2))


def expected_calibration_error(buckets: Sequence[CalibrationBucket], sample_size: int) -> float:
    if sample_size == 0:
        return 0.0
    return float(
        sum((bucket.total / sample_size) * abs(bucket.actual_accuracy - bucket.midpoint) for bucket in buckets)
    )


class ConfidenceCalibrator:
    """
    Persisted calibration model for one project.

    State is loaded lazily on first use and written through after every
    mutation through a sibling ``.tmp`` file swapped into place. A missing
    or unreadable file means starting uncalibrated.
    """

    def __init__(self, config: Optional[CalibrationConfig] = None) -> None:
        self.config = config or CalibrationConfig()
        self._data_points: List[CalibrationDataPoint] = []
        self._model: Optional[CalibrationModel] = None
        self._loaded = False
        self._dirty = False

    @property
    def data_path(self) -> Optional[Path]:
        return Path(self.config.data_path) if self.config.data_path is not None else None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._loaded

    def ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def load(self) -> None:
        self._data_points, self._model = self._read()
        self._loaded = True

    def _read(self):
        path = self.data_path
        if path is None or not path.exists():
            return [], None

        try:
            with open(path, "r", encoding="utf-8") as handle:
                stored = StoredCalibrationData.model_validate(json.load(handle))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning(f"Calibration data at {path} unreadable, starting fresh: {exc}")
            return [], None

        logger.debug(f"Loaded {len(stored.data_points)} calibration data points from {path}")
        return list(stored.data_points), stored.model

    def save(self) -> None:
        """Write data points and model. Failures are logged, never raised."""
        path = self.data_path
        if path is None or not self._dirty:
            return

        document = StoredCalibrationData(data_points=self._data_points, model=self._model)
        staging = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(staging, "w", encoding="utf-8") as handle:
                json.dump(document.model_dump(mode="json", by_alias=True), handle, indent=2)
            os.replace(staging, path)
            self._dirty = False
        except OSError as exc:
            logger.error(f"Failed to save calibration data to {path}: {exc}")

    def dispose(self) -> None:
        self.save()

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def record_feedback(
        self,
        reported_confidence: float,
        was_correct: bool,
        claim_type: Union[ClaimType, str],
        source: Union[VerificationSource, str],
    ) -> None:
        self.ensure_loaded()
        self._data_points.append(
            CalibrationDataPoint(
                reported_confidence=reported_confidence,
                was_correct=was_correct,
                claim_type=claim_type,
                source=source,
            )
        )
        self._dirty = True

        if len(self._data_points) % self.config.recalibrate_every == 0:
            self.recalibrate()
        self.save()

    def record_batch_feedback(self, items: Iterable[Dict[str, Any]]) -> None:
        """Append many ``{reported_confidence, was_correct, claim_type, source}`` items and recalibrate once."""
        self.ensure_loaded()
        for item in items:
            self._data_points.append(CalibrationDataPoint.model_validate(item))
        self._dirty = True
        self.recalibrate()
        self.save()

    def reset(self) -> None:
        self._loaded = True
        self._data_points = []
        self._model = None
        self._dirty = True
        self.save()

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------

    def _arrays(self, points: Sequence[CalibrationDataPoint]):
        confidences = np.array([point.reported_confidence for point in points], dtype=float)
        outcomes = np.array([1.0 if point.was_correct else 0.0 for point in points], dtype=float)
        return confidences, outcomes

    def recalibrate(self) -> Optional[CalibrationModel]:
        self.ensure_loaded()
        sample_size = len(self._data_points)
        if sample_size < self.config.min_samples_per_bucket:
            return self._model

        confidences, outcomes = self._arrays(self._data_points)
        buckets = build_buckets(confidences, outcomes, self.config.bucket_boundaries)

        self._model = CalibrationModel(
            buckets=buckets,
            overall_accuracy=float(outcomes.mean()),
            brier=brier_score(confidences, outcomes),
            calibration_error=expected_calibration_error(buckets, sample_size),
            last_updated=datetime.now(timezone.utc),
            sample_size=sample_size,
        )
        self._dirty = True
        logger.info(
            f"Recalibrated on {sample_size} points: accuracy={self._model.overall_accuracy:.3f} "
            f"brier={self._model.brier:.4f} ece={self._model.calibration_error:.4f}"
        )
        self.save()
        return self._model

    @property
    def model(self) -> Optional[CalibrationModel]:
        self.ensure_loaded()
        return self._model

    def _bucket_for(self, confidence: float) -> Optional[CalibrationBucket]:
        buckets = self._model.buckets if self._model else []
        for index, bucket in enumerate(buckets):
            if bucket.contains(confidence, closed=index == len(buckets) - 1):
                return bucket
        return None

    def _claim_type_accuracy(self, claim_type: Union[ClaimType, str]) -> Optional[float]:
        claim_type = ClaimType(claim_type)
        outcomes = [point.was_correct for point in self._data_points if point.claim_type == claim_type]
        if len(outcomes) < self.config.min_samples_per_bucket:
            return None
        return float(np.mean(outcomes))

    def calibrate(
        self,
        raw_confidence: float,
        claim_type: Optional[Union[ClaimType, str]] = None,
        source: Optional[Union[VerificationSource, str]] = None,
    ) -> float:
        """
        Correct ``raw_confidence`` using observed accuracy.

        Returns the input unchanged until the model and the matching bucket
        both hold enough samples. Pure with respect to model state.
        """
        self.ensure_loaded()
        minimum = self.config.min_samples_per_bucket
        if self._model is None or self._model.sample_size < minimum * 3:
            return raw_confidence

        bucket = self._bucket_for(raw_confidence)
        if bucket is None or bucket.total < minimum or bucket.midpoint == 0:
            return raw_confidence

        calibrated = raw_confidence * (bucket.actual_accuracy / bucket.midpoint)

        if claim_type is not None:
            type_accuracy = self._claim_type_accuracy(claim_type)
            if type_accuracy is not None:
                calibrated = (
                    calibrated * BUCKET_BLEND_WEIGHT
                    + type_accuracy * raw_confidence * (1 - BUCKET_BLEND_WEIGHT)
                )

        return max(0.0, min(1.0, calibrated))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stats(self) -> CalibrationStats:
        self.ensure_loaded()
        points = self._data_points
        confidences, outcomes = self._arrays(points)

        def _grouped(key) -> Dict[str, AccuracyStat]:
            groups: Dict[str, List[bool]] = {}
            for point in points:
                groups.setdefault(key(point), []).append(point.was_correct)
            return {
                name: AccuracyStat(accuracy=float(np.mean(values)), count=len(values))
                for name, values in groups.items()
            }

        return CalibrationStats(
            total_data_points=len(points),
            overall_accuracy=float(outcomes.mean()) if points else 0.0,
            brier_score=brier_score(confidences, outcomes),
            calibration_error=self._model.calibration_error if self._model else 0.0,
            by_claim_type=_grouped(lambda point: point.claim_type.value),
            by_source=_grouped(lambda point: point.source.value),
        )

    def export_data(self) -> Dict[str, Any]:
        self.ensure_loaded()
        return {
            "dataPoints": [point.model_dump(mode="json", by_alias=True) for point in self._data_points],
            "model": self._model.model_dump(mode="json", by_alias=True) if self._model else None,
        }

    def generate_report(self) -> str:
        stats = self.stats()
        rule = "═" * 62
        thin = "─" * 62

        def row(text: str) -> str:
            return f"║  {text:<60}║"

        lines = [
            f"╔{rule}╗",
            row("CONFIDENCE CALIBRATION REPORT".center(58)),
            f"╠{rule}╣",
            row(f"Total Data Points:     {stats.total_data_points:>8}"),
            row(f"Overall Accuracy:      {stats.overall_accuracy * 100:>7.1f}%"),
            row(f"Brier Score:           {stats.brier_score:>8.4f}  (lower is better)"),
            row(f"Calibration Error:     {stats.calibration_error * 100:>7.2f}%"),
        ]

        model = self.model
        if model is not None and model.buckets:
            lines += [
                f"╠{rule}╣",
                row("CALIBRATION BUCKETS"),
                row("Confidence Range    Samples    Actual Accuracy    Gap"),
                f"╟{thin}╢",
            ]
            for bucket in model.buckets:
                span = f"{bucket.min_confidence * 100:.0f}-{bucket.max_confidence * 100:.0f}%"
                if bucket.total:
                    accuracy = f"{bucket.actual_accuracy * 100:.1f}%"
                    gap = f"{(bucket.actual_accuracy - bucket.midpoint) * 100:.1f}%"
                else:
                    accuracy = gap = "N/A"
                lines.append(row(f"{span:<16}   {bucket.total:>7}    {accuracy:>14}    {gap:>6}"))

        for title, groups in (
            ("ACCURACY BY CLAIM TYPE", stats.by_claim_type),
            ("ACCURACY BY SOURCE", stats.by_source),
        ):
            lines += [f"╠{rule}╣", row(title), f"╟{thin}╢"]
            for name, stat in groups.items():
                lines.append(row(f"{name:<20}   {stat.count:>6} samples   {stat.accuracy * 100:>6.1f}%"))

        lines.append(f"╚{rule}╝")
        return "\n".join(lines)
