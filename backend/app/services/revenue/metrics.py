"""
Conversion metrics over a set of correlations.

compute_conversion_metrics is a pure function: no database access, no
clock, and dict keys come out sorted so equal inputs give equal outputs.
"""
from collections import Counter
from typing import Iterable

from ...models.db_models import OutcomeType
from ...models.journey import ConversionMetrics, Timeframe

__all__ = ["compute_conversion_metrics", "ConversionMetrics", "Timeframe"]


def compute_conversion_metrics(correlations: Iterable) -> ConversionMetrics:
    """
    Aggregate correlations (anything with outcome_type, payment_method and
    conversion_duration attributes) into ConversionMetrics.

    - total_conversions counts the visible outcome_type == paid
    - average duration is over paid correlations that have a duration
    - success_rate = paid / total * 100, rounded to 2 places
    """
    rows = list(correlations)
    if not rows:
        return ConversionMetrics.empty()

    paid_value = OutcomeType.PAID.value
    by_method = Counter()
    by_outcome = Counter()
    paid = 0
    durations = []

    for row in rows:
        outcome = row.outcome_type.value if isinstance(row.outcome_type, OutcomeType) else row.outcome_type
        by_outcome[outcome] += 1
        by_method[row.payment_method or "unknown"] += 1
        if outcome == paid_value:
            paid += 1
            if row.conversion_duration is not None:
                durations.append(row.conversion_duration)

    average = round(sum(durations) / len(durations), 2) if durations else None

    return ConversionMetrics(
        total_correlations=len(rows),
        total_conversions=paid,
        average_conversion_duration_ms=average,
        success_rate=round(paid / len(rows) * 100, 2),
        by_payment_method={k: by_method[k] for k in sorted(by_method)},
        by_outcome_type={k: by_outcome[k] for k in sorted(by_outcome)},
    )
