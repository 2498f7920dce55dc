from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Tuple

from .dimensions import (
    DIMENSIONS,
    FINDING_FALLBACK,
    FINDING_TEXT,
    GENERAL_RECOMMENDATION,
    SPECIFIC_RECOMMENDATION,
    total_questions,
)
from .errors import ValidationError
from .types import PRODUCTS, Finding, Priority, ScoreResult, Severity, Status

CHOICES: int = 4
SCALE_FACTOR: float = 1.25
FINDINGS_MAX: int = 3
SPECIFIC_RECOMMENDATIONS_MAX: int = 2
WEAK_THRESHOLD: float = 3.0
CRITICAL_THRESHOLD: float = 2.0


def _round1(x: float) -> float:
    # half away from zero; float round() would give 2.7 for some x.x5 inputs
    return float(Decimal(str(x)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def choice_value(c: int) -> float:
    """Map a choice index 0..3 (A..D) onto the 1..5 scale."""
    return (int(c) + 1) * SCALE_FACTOR


def validate_answers(raw_answers: Sequence[Optional[int]], product: str) -> List[Optional[int]]:
    if product not in PRODUCTS:
        raise ValidationError('Producto inválido. Use "personas" o "empresas".')
    if not isinstance(raw_answers, (list, tuple)) or not raw_answers:
        raise ValidationError("Respuestas del diagnóstico requeridas.")
    limit = total_questions(product)
    if len(raw_answers) > limit:
        raise ValidationError(f"Se esperaban como máximo {limit} respuestas para {product}.")
    out: List[Optional[int]] = []
    for pos, ans in enumerate(raw_answers):
        if ans is None:
            out.append(None)
            continue
        if isinstance(ans, bool) or not isinstance(ans, int) or not 0 <= ans < CHOICES:
            raise ValidationError(f"Respuesta inválida en la posición {pos + 1}: use 0-3 o null.")
        out.append(int(ans))
    return out


def dimension_scores(raw_answers: Sequence[Optional[int]], product: str) -> Dict[str, float]:
    scores: Dict[str, float] = {}
    start = 0
    for name, count in DIMENSIONS[product]:
        block = [a for a in raw_answers[start:start + count] if a is not None]
        start += count
        if not block:
            continue
        scores[name] = _round1(sum(choice_value(a) for a in block) / len(block))
    return scores


def overall_average(scores: Dict[str, float]) -> float:
    if not scores:
        return 0.0
    return sum(scores.values()) / len(scores)


def classify_status(overall: float) -> Status:
    if overall >= 4.0:
        return Status.EXCELLENT
    if overall >= 3.0:
        return Status.STABLE
    if overall >= 2.0:
        return Status.ALERT
    return Status.CRITICAL


def classify_priority(overall: float, scores: Dict[str, float]) -> Priority:
    if overall < CRITICAL_THRESHOLD:
        return Priority.URGENT
    critical = sum(1 for v in scores.values() if v < CRITICAL_THRESHOLD)
    if critical >= 2:
        return Priority.HIGH
    if critical >= 1 or overall < WEAK_THRESHOLD:
        return Priority.MEDIUM
    return Priority.LOW


def severity(score: float) -> Severity:
    if score < 2.0:
        return "crítico"
    if score < 2.5:
        return "alto"
    return "moderado"


def _lowest(scores: Dict[str, float], n: int) -> List[Tuple[str, float]]:
    # sorted() is stable, so ties keep questionnaire order
    return sorted(scores.items(), key=lambda kv: kv[1])[:n]


def findings(scores: Dict[str, float], product: str) -> List[Finding]:
    texts = FINDING_TEXT.get(product, {})
    return [
        Finding(dimension=name, score=val, severity=severity(val), text=texts.get(name, FINDING_FALLBACK))
        for name, val in _lowest(scores, FINDINGS_MAX)
        if val < WEAK_THRESHOLD
    ]


def recommendations(scores: Dict[str, float], product: str, status: Status) -> List[str]:
    out = [GENERAL_RECOMMENDATION[status.value]]
    table = SPECIFIC_RECOMMENDATION.get(product, {})
    for name, val in _lowest(scores, SPECIFIC_RECOMMENDATIONS_MAX):
        if val < WEAK_THRESHOLD and name in table:
            out.append(table[name])
    return out


def score(raw_answers: Sequence[Optional[int]], product: str) -> ScoreResult:
    """
    Score one questionnaire. Pure: no I/O, same inputs give the same output.
    raw_answers: choice indices 0..3 (or None for skipped), in questionnaire order.
    """
    answers = validate_answers(raw_answers, product)
    dims = dimension_scores(answers, product)
    overall = overall_average(dims)
    status = classify_status(overall)
    # classification uses the exact mean; the stored figure is rounded like the dimensions
    return ScoreResult(
        dimension_scores=dims,
        overall_average=_round1(overall),
        status=status,
        priority=classify_priority(overall, dims),
        findings=findings(dims, product),
        recommendations=recommendations(dims, product, status),
    )
