"""
prediction.py
--------------
Next-payment projection from the last payment and the classified frequency.

Classified frequencies advance by whole calendar months so that a company
paying on the 31st keeps paying at month end (pandas DateOffset clamps to
the last valid day). Irregular series fall back to the mean interval.
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from config.config_loader import get_pattern_detection_config
from core.models import FREQUENCY_MONTHS, Frequency, NextExpectedPayment, PatternConfidence, PaymentRecord


# (payments needed, confidence if met, confidence otherwise)
_PREDICTION_CONFIDENCE = {
    Frequency.MONTHLY: (6, PatternConfidence.HIGH, PatternConfidence.MEDIUM),
    Frequency.QUARTERLY: (4, PatternConfidence.HIGH, PatternConfidence.MEDIUM),
    Frequency.HALF_YEARLY: (3, PatternConfidence.HIGH, PatternConfidence.MEDIUM),
    Frequency.YEARLY: (3, PatternConfidence.MEDIUM, PatternConfidence.LOW),
}


def predict_next_payment(
    payments: Sequence[PaymentRecord],
    frequency: Frequency,
    intervals: Sequence[int],
    average_amount: float,
) -> Optional[NextExpectedPayment]:
    """
    Args:
        payments: Payments sorted ascending by date.
        frequency: Classified frequency.
        intervals: Day-gaps between the payments.
        average_amount: Historical average amount.

    Returns:
        NextExpectedPayment, or None when there is too little evidence.
    """
    if not payments:
        return None

    last_date = pd.Timestamp(payments[-1].date_received)
    amount = round(average_amount, 2)

    if frequency in (Frequency.IRREGULAR, Frequency.UNKNOWN):
        min_payments = get_pattern_detection_config()["irregular_prediction_min_payments"]
        if len(payments) < min_payments or len(intervals) == 0:
            return None
        next_date = last_date + pd.Timedelta(days=float(np.mean(intervals)))
        return NextExpectedPayment(
            estimated_date=next_date.date(),
            estimated_amount=amount,
            confidence=PatternConfidence.LOW,
        )

    next_date = last_date + pd.DateOffset(months=FREQUENCY_MONTHS[frequency])
    needed, if_met, otherwise = _PREDICTION_CONFIDENCE[frequency]
    confidence = if_met if len(payments) >= needed else otherwise

    return NextExpectedPayment(
        estimated_date=next_date.date(),
        estimated_amount=amount,
        confidence=confidence,
    )
