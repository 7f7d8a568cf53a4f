"""
Calibration Models - Reported-vs-observed confidence bookkeeping

Data points accumulate across runs and are the source of truth; buckets and
the model are recomputed wholesale from them.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .claim import ClaimType
from .evidence import VerificationSource


class CalibrationDataPoint(BaseModel):
    """One piece of feedback: what we reported and whether we were right"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    reported_confidence: float = Field(..., ge=0.0, le=1.0)
    was_correct: bool
    claim_type: ClaimType
    source: VerificationSource
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CalibrationBucket(BaseModel):
    """Confidence-range bin comparing reported and actual accuracy"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    min_confidence: float
    max_confidence: float
    midpoint: float
    total: int = Field(default=0, ge=0)
    true_positives: int = Field(default=0, ge=0)
    false_positives: int = Field(default=0, ge=0)
    actual_accuracy: float = Field(default=0.0, ge=0.0, le=1.0)

    def contains(self, confidence: float, closed: bool = False) -> bool:
        """Whether ``confidence`` falls in this bucket's range"""
        if closed:
            return self.min_confidence <= confidence <= self.max_confidence
        return self.min_confidence <= confidence < self.max_confidence


class CalibrationModel(BaseModel):
    """Project-wide calibration state, rebuilt on every recalibration"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    buckets: List[CalibrationBucket] = Field(default_factory=list)
    overall_accuracy: float = Field(default=0.0, ge=0.0, le=1.0)
    brier: float = Field(default=0.0, ge=0.0)
    calibration_error: float = Field(default=0.0, ge=0.0)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sample_size: int = Field(default=0, ge=0)


class StoredCalibrationData(BaseModel):
    """On-disk JSON document holding data points and the current model"""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    data_points: List[CalibrationDataPoint] = Field(default_factory=list)
    model: Optional[CalibrationModel] = None
    version: int = 1
