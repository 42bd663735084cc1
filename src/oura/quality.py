"""Qualitative bands for scores, HRV and resting heart rate."""

from __future__ import annotations

from enum import Enum


class ScoreQuality(str, Enum):
    """Band for a 0–100 readiness/sleep score or sleep efficiency."""

    OPTIMAL = "optimal"      # 85-100
    GOOD = "good"            # 70-84
    FAIR = "fair"            # 60-69
    ATTENTION = "attention"  # < 60
    UNKNOWN = "unknown"

    @classmethod
    def from_score(cls, score: int | None) -> "ScoreQuality":
        if score is None or score < 0 or score > 100:
            return cls.UNKNOWN
        if score >= 85:
            return cls.OPTIMAL
        if score >= 70:
            return cls.GOOD
        if score >= 60:
            return cls.FAIR
        return cls.ATTENTION

    @property
    def description(self) -> str:
        return _SCORE_DESCRIPTIONS[self]

    @property
    def color_name(self) -> str:
        return _SCORE_COLORS[self]


_SCORE_DESCRIPTIONS = {
    ScoreQuality.OPTIMAL: "Optimal",
    ScoreQuality.GOOD: "Good",
    ScoreQuality.FAIR: "Fair",
    ScoreQuality.ATTENTION: "Pay Attention",
    ScoreQuality.UNKNOWN: "Unknown",
}

_SCORE_COLORS = {
    ScoreQuality.OPTIMAL: "green",
    ScoreQuality.GOOD: "blue",
    ScoreQuality.FAIR: "yellow",
    ScoreQuality.ATTENTION: "red",
    ScoreQuality.UNKNOWN: "gray",
}


class HRVQuality(str, Enum):
    """Band for an HRV value in milliseconds."""

    EXCELLENT = "excellent"  # 50+ ms
    GOOD = "good"            # 30-49 ms
    FAIR = "fair"            # 20-29 ms
    LOW = "low"              # < 20 ms

    @classmethod
    def from_hrv(cls, hrv_ms: float) -> "HRVQuality":
        if hrv_ms >= 50:
            return cls.EXCELLENT
        if hrv_ms >= 30:
            return cls.GOOD
        if hrv_ms >= 20:
            return cls.FAIR
        return cls.LOW

    @property
    def description(self) -> str:
        return self.value.capitalize()


class RestingHRQuality(str, Enum):
    """Band for a resting heart rate in bpm."""

    EXCELLENT = "excellent"  # < 60 bpm
    GOOD = "good"            # 60-69 bpm
    AVERAGE = "average"      # 70-79 bpm
    ELEVATED = "elevated"    # 80+ bpm

    @classmethod
    def from_bpm(cls, bpm: int) -> "RestingHRQuality":
        if bpm < 60:
            return cls.EXCELLENT
        if bpm < 70:
            return cls.GOOD
        if bpm < 80:
            return cls.AVERAGE
        return cls.ELEVATED

    @property
    def description(self) -> str:
        return self.value.capitalize()
