"""Grade progression analysis across sequential assessment snapshots.

The analyzer compares the first and last present score of each topic across
the ordered snapshot positions (unit test 1, unit test 2, mid semester, end
semester) and turns the share of declining topics into an additive risk
contribution. Records without at least two data points for any topic fall
back to a single-point assessment of the mean grade. The analyzer is
deterministic so that every contribution can be explained to staff.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from schemas import Recommendation, SubjectRecord
from engines.grades import flatten_grades, topic_series

_LOGGER = logging.getLogger(__name__)

DECLINING = "declining"
STABLE = "stable"
IMPROVING = "improving"
INSUFFICIENT_DATA = "insufficient_data"


@dataclass
class TopicTrend:
    """Trend verdict for one topic."""

    topic: str
    trend: str
    points: int
    first_score: Optional[float] = None
    last_score: Optional[float] = None
    drop_pct: Optional[float] = None


@dataclass
class ProgressionAnalysis:
    """Additive contribution of the progression analysis to a risk score."""

    score: int = 0
    factors: List[str] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)
    trends: List[TopicTrend] = field(default_factory=list)

    def add(self, points: int, factor: str, explanation: str, recommendation: Optional[Recommendation] = None) -> None:
        self.score += points
        self.factors.append(factor)
        self.explanations.append(explanation)
        if recommendation is not None:
            self.recommendations.append(recommendation)


def factor_tag(topic: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", topic.lower()).strip("_")
    return f"declining_{slug or 'topic'}"


class ProgressionAnalyzer:
    """Rule-based grade progression analyzer.

    Parameters
    ----------
    decline_threshold:
        Relative drop from the first to the last score above which a topic
        counts as declining. Defaults to 15%.
    improve_threshold:
        Relative gain above which a topic counts as improving. Defaults to 10%.
    low_mean:
        Mean grade below which the single-point fallback reports low
        performance.
    moderate_mean:
        Mean grade below which the single-point fallback reports moderate
        performance.
    """

    def __init__(
        self,
        decline_threshold: float = 0.15,
        improve_threshold: float = 0.10,
        low_mean: float = 50.0,
        moderate_mean: float = 70.0,
    ) -> None:
        if not 0.0 < decline_threshold < 1.0:
            raise ValueError("decline_threshold must be in (0, 1)")
        if improve_threshold <= 0.0:
            raise ValueError("improve_threshold must be positive")
        if not 0.0 <= low_mean <= moderate_mean <= 100.0:
            raise ValueError("low_mean must not exceed moderate_mean")

        self.decline_threshold = float(decline_threshold)
        self.improve_threshold = float(improve_threshold)
        self.low_mean = float(low_mean)
        self.moderate_mean = float(moderate_mean)

    # ----- public API --------------------------------------------------
    def classify(self, first: float, last: float) -> Tuple[str, Optional[float]]:
        """Return the trend for a first/last score pair and the relative drop.

        A positive drop means the score went down. A zero first score has no
        relative change; any later gain counts as improving.
        """

        if first == 0:
            return (IMPROVING if last > 0 else STABLE), None
        drop = (first - last) / first
        if drop > self.decline_threshold:
            return DECLINING, drop
        if drop < -self.improve_threshold:
            return IMPROVING, drop
        return STABLE, drop

    def topic_trends(self, record: SubjectRecord) -> List[TopicTrend]:
        trends: List[TopicTrend] = []
        for topic, scores in topic_series(record).items():
            if len(scores) < 2:
                trends.append(TopicTrend(topic=topic, trend=INSUFFICIENT_DATA, points=len(scores)))
                continue
            first, last = scores[0], scores[-1]
            trend, drop = self.classify(first, last)
            trends.append(
                TopicTrend(
                    topic=topic,
                    trend=trend,
                    points=len(scores),
                    first_score=first,
                    last_score=last,
                    drop_pct=None if drop is None else drop * 100.0,
                )
            )
        return trends

    def analyze(self, record: SubjectRecord, pass_mark: float = 60.0) -> ProgressionAnalysis:
        """Compute the progression contribution for ``record``."""

        trends = self.topic_trends(record)
        voted = [trend for trend in trends if trend.trend != INSUFFICIENT_DATA]
        if not voted:
            result = self._single_point(record, pass_mark)
            result.trends = trends
            return result

        result = ProgressionAnalysis(trends=trends)
        declining = [trend for trend in voted if trend.trend == DECLINING]
        improving = [trend for trend in voted if trend.trend == IMPROVING]
        ratio = len(declining) / len(voted)
        summary = f"Grades declining in {len(declining)} of {len(voted)} topics"

        if ratio >= 0.5:
            result.add(
                30,
                "severe_grade_decline",
                summary,
                Recommendation(action="Arrange academic intervention", urgency="immediate"),
            )
        elif ratio >= 0.25:
            result.add(
                20,
                "moderate_grade_decline",
                summary,
                Recommendation(action="Schedule academic counseling", urgency="high"),
            )
        elif ratio > 0:
            result.add(
                10,
                "mild_grade_decline",
                summary,
                Recommendation(action="Monitor grade progression", urgency="medium"),
            )

        for trend in declining:
            drop = f"{trend.drop_pct:.1f}% drop"
            result.add(
                0,
                factor_tag(trend.topic),
                f"{trend.topic} declined from {trend.first_score:g} to {trend.last_score:g} ({drop})",
            )

        if len(improving) > len(declining):
            result.score = max(0, result.score - 5)
            result.factors.append("improving_performance")
            result.explanations.append(f"Improving performance in {len(improving)} topics")

        _LOGGER.debug(
            "Progression for %s: %d declining, %d improving of %d topics (+%d)",
            record.subject_id,
            len(declining),
            len(improving),
            len(voted),
            result.score,
        )
        return result

    # ----- helpers -----------------------------------------------------
    def _single_point(self, record: SubjectRecord, pass_mark: float) -> ProgressionAnalysis:
        result = ProgressionAnalysis()
        grades = flatten_grades(record, pass_mark)
        if not grades:
            return result

        mean = sum(grade.score for grade in grades) / len(grades)
        if mean < self.low_mean:
            result.add(
                20,
                "low_performance",
                f"Average grade {mean:.1f}% indicates low performance",
                Recommendation(action="Provide intensive tutoring", urgency="immediate"),
            )
        elif mean < self.moderate_mean:
            result.add(
                10,
                "moderate_performance",
                f"Average grade {mean:.1f}% indicates moderate performance",
                Recommendation(action="Offer additional academic support", urgency="medium"),
            )
        return result


DEFAULT_ANALYZER = ProgressionAnalyzer()


def analyze(record: SubjectRecord, pass_mark: float = 60.0) -> ProgressionAnalysis:
    """Run the default analyzer over ``record``."""

    return DEFAULT_ANALYZER.analyze(record, pass_mark)
