from __future__ import annotations

import math
from typing import Iterable, Tuple

from .schemas import BenchmarkReport


def _ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def precision(tp: int, fp: int) -> float:
    return _ratio(tp, tp + fp)


def recall(tp: int, fn: int) -> float:
    return _ratio(tp, tp + fn)


def f1_score(tp: int, fp: int, fn: int) -> float:
    p = precision(tp, fp)
    r = recall(tp, fn)
    return _ratio(2 * p * r, p + r)


def accuracy(tp: int, tn: int, fp: int, fn: int) -> float:
    return _ratio(tp + tn, tp + tn + fp + fn)


def calculate_mcc(tp: int, tn: int, fp: int, fn: int) -> float:
    denominator = math.sqrt((tp + fp) * (tp + fn) * (tn + fp) * (tn + fn))
    if denominator == 0:
        return 0.0
    value = (tp * tn - fp * fn) / denominator
    return max(-1.0, min(1.0, value))


def mcc_to_unit(mcc: float) -> float:
    return (max(-1.0, min(1.0, mcc)) + 1.0) / 2.0


def mcc_to_percentage(mcc: float) -> int:
    return round(mcc_to_unit(mcc) * 100)


def report_mcc(report: BenchmarkReport) -> float:
    return calculate_mcc(
        report.true_positives,
        report.true_negatives,
        report.false_positives,
        report.false_negatives,
    )


def report_from_counts(tp: int, tn: int, fp: int, fn: int) -> BenchmarkReport:
    return BenchmarkReport(
        precision=precision(tp, fp),
        recall=recall(tp, fn),
        f1=f1_score(tp, fp, fn),
        accuracy=accuracy(tp, tn, fp, fn),
        true_positives=tp,
        true_negatives=tn,
        false_positives=fp,
        false_negatives=fn,
        data_points=tp + tn + fp + fn,
    )


def report_from_predictions(pairs: Iterable[Tuple[bool, bool]]) -> BenchmarkReport:
    tp = tn = fp = fn = 0
    for predicted, actual in pairs:
        if predicted and actual:
            tp += 1
        elif predicted:
            fp += 1
        elif actual:
            fn += 1
        else:
            tn += 1
    return report_from_counts(tp, tn, fp, fn)
