"""
Risk intake and screening-hit disposition.

Ingests the risk-analysis service output, lets an operator disposition each
candidate hit, then derives the final risk determination:

- any Matched hit          -> High, score max(service score, 95)
- else any Unable to Resolve -> High, service score kept
- else                     -> service level and score unchanged

Auto-approval ("clean") needs Low risk, no Matched or unresolved hits and a
final score strictly below AUTO_APPROVE_SCORE_THRESHOLD.
"""

from typing import Optional

from logger import get_logger
from models import (
    FinalRiskDetermination, GateResult, MatchStatus,
    RiskAnalysisResult, RiskLevel, ScreeningHit,
)

logger = get_logger(__name__)

AUTO_APPROVE_SCORE_THRESHOLD = 25
MATCHED_HIT_MIN_SCORE = 95
EDD_STATUS_HINT = "requires enhanced due diligence."

_FINAL_OUTCOMES = (MatchStatus.MATCHED, MatchStatus.UNMATCHED, MatchStatus.UNABLE_TO_RESOLVE)


def is_clean(risk_level: RiskLevel, risk_score: int, matched_count: int, unresolved_count: int) -> bool:
    """Auto-approval eligibility."""
    return (
        risk_level == RiskLevel.LOW
        and matched_count == 0
        and unresolved_count == 0
        and risk_score < AUTO_APPROVE_SCORE_THRESHOLD
    )


class ScreeningDisposition:
    """Operator disposition of the screening hits from one risk analysis."""

    def __init__(self, result: RiskAnalysisResult):
        hits = [h.model_copy(update={"status": MatchStatus.POTENTIAL}) for h in result.screening_result.hits]
        self.result = result.model_copy(update={
            "screening_result": result.screening_result.model_copy(update={"hits": hits}),
        })
        if hits:
            logger.info(f"Ingested {len(hits)} screening hit(s) for disposition")

    @property
    def hits(self) -> list[ScreeningHit]:
        return self.result.screening_result.hits

    @property
    def requires_disposition(self) -> bool:
        return bool(self.hits)

    @property
    def pending_hits(self) -> list[ScreeningHit]:
        return [h for h in self.hits if h.status == MatchStatus.POTENTIAL]

    @property
    def all_resolved(self) -> bool:
        return not self.pending_hits

    def disposition(self, hit_id: str, outcome: MatchStatus) -> ScreeningHit:
        """
        Record the operator's decision for one hit.

        Raises:
            ValueError: outcome is Potential (not a decision)
            KeyError: no hit with that id
        """
        outcome = MatchStatus(outcome)
        if outcome not in _FINAL_OUTCOMES:
            raise ValueError(f"'{outcome.value}' is not a disposition outcome")

        hits = self.hits
        for i, hit in enumerate(hits):
            if hit.id == hit_id:
                hits[i] = hit.model_copy(update={"status": outcome})
                logger.info(f"Hit {hit_id} ({hit.name}) dispositioned as {outcome.value}")
                return hits[i]
        raise KeyError(hit_id)

    def counts(self) -> tuple[int, int]:
        """(matched, unable to resolve)"""
        matched = sum(1 for h in self.hits if h.status == MatchStatus.MATCHED)
        unresolved = sum(1 for h in self.hits if h.status == MatchStatus.UNABLE_TO_RESOLVE)
        return matched, unresolved

    def check_gate(self) -> GateResult:
        pending = self.pending_hits
        if pending:
            return GateResult(
                allowed=False,
                reason=f"{len(pending)} screening hit(s) still Potential",
                blocking=[h.id for h in pending],
            )
        return GateResult(allowed=True)

    def finalize(self) -> Optional[FinalRiskDetermination]:
        """Final risk determination, or None while any hit is still Potential."""
        if not self.all_resolved:
            logger.warning(self.check_gate().reason)
            return None

        level = self.result.risk_level
        score = self.result.risk_score
        hint = ""
        matched, unresolved = self.counts()

        if matched:
            level = RiskLevel.HIGH
            score = max(score, MATCHED_HIT_MIN_SCORE)
            hint = EDD_STATUS_HINT
        elif unresolved:
            # Unresolved hits escalate the level only; the score stays as reported
            level = RiskLevel.HIGH
            hint = EDD_STATUS_HINT

        determination = FinalRiskDetermination(
            risk_level=level,
            risk_score=score,
            status_hint=hint,
            is_clean=is_clean(level, score, matched, unresolved),
            matched_count=matched,
            unresolved_count=unresolved,
            disposition_skipped=not self.requires_disposition,
        )
        logger.info(
            f"Final risk: {level.value} ({score}), matched={matched}, "
            f"unresolved={unresolved}, clean={determination.is_clean}"
        )
        return determination
