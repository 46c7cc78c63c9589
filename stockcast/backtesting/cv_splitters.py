from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..data_collection.models import Bar, Series
from .errors import InsufficientDataError, InvalidParameterError
from .metrics import ValidationMetrics
from .strategies import StrategyVariant

logger = logging.getLogger(__name__)

TRAINING_SYMBOL = "TRAINING"
VALIDATION_SYMBOL = "VALIDATION"

BarKey = Tuple[str, int]


@dataclass(frozen=True)
class Fold:
    index: int
    training_data: Series
    validation_data: Series
    training_keys: Tuple[BarKey, ...]
    validation_keys: Tuple[BarKey, ...]
    metrics: Optional[ValidationMetrics] = None
    variant: Optional[StrategyVariant] = None

    @property
    def training_size(self) -> int:
        return len(self.training_keys)

    @property
    def validation_size(self) -> int:
        return len(self.validation_keys)


def fold_sizes(total: int, k: int) -> List[int]:
    """total // k bars per fold, the first total % k folds one larger."""
    base, extra = divmod(total, k)
    return [base + (1 if i < extra else 0) for i in range(k)]


def create_kfold_splits(securities: Sequence[Series], k: int) -> List[Fold]:
    """
    Contiguous k-fold partition of every bar of every security.

    Securities are walked in symbol order with a single cursor, so a fold's
    validation block can span the end of one security and the start of the
    next. Each fold trains on every bar outside its validation block, in the
    same order. Neighbouring folds are positionally correlated; this is a
    deterministic split, not a shuffled one.
    """
    if k is None or k <= 1:
        raise InvalidParameterError(f"k must be greater than 1, got {k}")
    if not securities:
        raise InvalidParameterError("no securities to split")

    ordered = sorted(securities, key=lambda s: s.symbol)
    keyed: List[Tuple[BarKey, Bar]] = [
        ((series.symbol, i), bar) for series in ordered for i, bar in enumerate(series)
    ]
    total = len(keyed)
    if total < k:
        raise InsufficientDataError(f"{total} bars cannot be split into {k} folds")

    folds = []
    cursor = 0
    for i, size in enumerate(fold_sizes(total, k)):
        validation = keyed[cursor:cursor + size]
        training = keyed[:cursor] + keyed[cursor + size:]
        cursor += size

        folds.append(
            Fold(
                index=i,
                training_data=Series.from_bars(TRAINING_SYMBOL, (bar for _, bar in training)),
                validation_data=Series.from_bars(VALIDATION_SYMBOL, (bar for _, bar in validation)),
                training_keys=tuple(key for key, _ in training),
                validation_keys=tuple(key for key, _ in validation),
            )
        )
        logger.debug(f"Fold {i + 1}/{k}: train={len(training)} validation={len(validation)}")

    return folds
