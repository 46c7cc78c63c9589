"""
Event detection metrics.

Predicted events are matched one-to-one against actual events by a blended
similarity score:

    date proximity      0.4 same day, 0.2 within 3 days
    title Jaccard       x 0.3
    description Jaccard x 0.1
    sentiment closeness x 0.1   (sentiment in [-1, 1])
    impact closeness    x 0.1   (impact_score on 0-10)

Pairs are matched greedily, highest similarity first, while the best remaining
pair is strictly above the threshold.
"""

import logging
import re
from typing import List, Optional, Sequence, Set, Tuple

import numpy as np

from ..data_collection.models import EventData, to_date
from .errors import InvalidParameterError
from .metrics import ValidationMetrics, precision_recall_f1

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.5
NEAR_DATE_DAYS = 3
IMPACT_SCALE = 10.0

_TOKEN_SPLIT = re.compile(r"[\s,.\-]+")


def tokenize(text: str) -> Set[str]:
    return {tok for tok in _TOKEN_SPLIT.split((text or "").lower()) if tok}


def jaccard(a: str, b: str) -> float:
    ta, tb = tokenize(a), tokenize(b)
    union = ta | tb
    if not union:
        return 0.0
    return len(ta & tb) / len(union)


def _date_score(a: str, b: str) -> float:
    if a == b:
        return 0.4
    try:
        gap = abs((to_date(a) - to_date(b)).days)
    except ValueError:
        return 0.0
    if gap == 0:
        return 0.4
    if gap <= NEAR_DATE_DAYS:
        return 0.2
    return 0.0


def event_similarity(predicted: EventData, actual: EventData) -> float:
    score = _date_score(predicted.date, actual.date)
    score += jaccard(predicted.title, actual.title) * 0.3
    score += jaccard(predicted.description, actual.description) * 0.1

    sentiment_closeness = 1.0 - min(1.0, abs(predicted.sentiment - actual.sentiment) / 2.0)
    impact_closeness = 1.0 - min(1.0, abs(predicted.impact_score - actual.impact_score) / IMPACT_SCALE)
    score += sentiment_closeness * 0.1
    score += impact_closeness * 0.1
    return float(score)


def match_events(
    predicted: Sequence[EventData],
    actual: Sequence[EventData],
    threshold: float = SIMILARITY_THRESHOLD,
) -> List[Tuple[int, int, float]]:
    """Greedy one-to-one matching; returns (predicted_idx, actual_idx, similarity)."""
    if not predicted or not actual:
        return []

    sim = np.array([[event_similarity(p, a) for a in actual] for p in predicted], dtype=float)
    matches = []

    while True:
        best = threshold
        best_i = best_j = -1
        for i in range(sim.shape[0]):
            for j in range(sim.shape[1]):
                if sim[i, j] > best:
                    best = sim[i, j]
                    best_i, best_j = i, j
        if best_i < 0:
            break
        matches.append((best_i, best_j, float(best)))
        sim[best_i, :] = -np.inf
        sim[:, best_j] = -np.inf

    return matches


def calculate_event_detection_metrics(
    predicted: Optional[Sequence[EventData]],
    actual: Optional[Sequence[EventData]],
    threshold: float = SIMILARITY_THRESHOLD,
) -> ValidationMetrics:
    """
    Precision/recall/F1 of predicted events against observed ones.

    accuracy = TP / (TP + FP + FN). mean_absolute_error averages the sentiment
    error and the impact error (rescaled to [0, 1]) over matched pairs.
    """
    if predicted is None or actual is None:
        raise InvalidParameterError("event lists must not be None")

    matches = match_events(predicted, actual, threshold)
    tp = len(matches)
    fp = len(predicted) - tp
    fn = len(actual) - tp

    total = tp + fp + fn
    accuracy = tp / total if total > 0 else 0.0
    precision, recall, f1 = precision_recall_f1(tp, fp, fn)

    mae = 0.0
    if matches:
        sentiment_err = sum(abs(predicted[i].sentiment - actual[j].sentiment) for i, j, _ in matches)
        impact_err = sum(abs(predicted[i].impact_score - actual[j].impact_score) for i, j, _ in matches)
        mae = (sentiment_err + impact_err / IMPACT_SCALE) / (2 * len(matches))

    logger.debug(f"Event matching: {tp} matched, {fp} unmatched predicted, {fn} unmatched actual")

    return ValidationMetrics(
        accuracy=float(accuracy),
        precision=precision,
        recall=recall,
        f1_score=f1,
        mean_absolute_error=float(mae),
    )
