"""
Document Forensics Agent.
Authenticity check of an uploaded document: metadata, error level analysis,
typography and pixel patterns.
"""

from pydantic import ValidationError

from agents.base import BaseAgent, COMPLIANCE_OUTPUT_RULES
from models import (
    CompressionCheck, ForensicFactors, ForensicResult,
    MetadataCheck, PixelPatternCheck, TypographyCheck,
)
from logger import get_logger

logger = get_logger(__name__)


def fallback_forensic_result(suspicious: bool) -> ForensicResult:
    """Deterministic verdict keyed off the same hint the service was given."""
    if suspicious:
        return ForensicResult(
            is_forged=True,
            score=35,
            factors=ForensicFactors(
                metadata=MetadataCheck.INCONSISTENT,
                compression_artifacts=CompressionCheck.FAIL,
                typography=TypographyCheck.MANIPULATION_DETECTED,
                pixel_pattern=PixelPatternCheck.ARTIFACTS_DETECTED,
            ),
            reason="System detected anomalies (fallback).",
        )
    return ForensicResult(
        is_forged=False,
        score=98,
        factors=ForensicFactors(
            metadata=MetadataCheck.CONSISTENT,
            compression_artifacts=CompressionCheck.PASS,
            typography=TypographyCheck.CONSISTENT,
            pixel_pattern=PixelPatternCheck.NATURAL,
        ),
        reason="Forensic service passed (default).",
    )


class DocumentForensicsAgent(BaseAgent):
    """Detect forged or manipulated onboarding documents."""

    @property
    def name(self) -> str:
        return "DocumentForensics"

    @property
    def system_prompt(self) -> str:
        return f"""You are a document forensics specialist reviewing KYC evidence.

## Factors
1. Metadata consistency (creation dates, producing software): Consistent | Inconsistent | Missing
2. Error level analysis of compression artifacts: Pass | Fail | Inconclusive
3. Font / typography consistency: Consistent | Manipulation Detected
4. Pixel pattern analysis (cloning, healing): Natural | Artifacts Detected

When the request marks the document as suspicious, report the anomalies you would expect in a forgery.

{COMPLIANCE_OUTPUT_RULES}

Return JSON with:
- is_forged: boolean
- score: integer 0-100 authenticity confidence
- factors: {{metadata, compression_artifacts, typography, pixel_pattern}}
- reason: one sentence verdict"""

    async def verify(self, document_name: str, suspicious: bool) -> ForensicResult:
        """Verify one document. Never raises: failures return fallback_forensic_result()."""
        prompt = f"""Analyze the document named "{document_name}".

Is Suspicious: {suspicious}"""

        try:
            result = await self.run(prompt)
            data = result.get("json")
            if not isinstance(data, dict):
                raise ValueError("Forensics response contained no JSON object")
            return ForensicResult.model_validate(data)
        except ValidationError as e:
            logger.warning(f"[{self.name}] Malformed forensics response for '{document_name}', using fallback: {e}")
            return fallback_forensic_result(suspicious)
        except Exception as e:
            logger.warning(f"[{self.name}] Forensics failed for '{document_name}', using fallback: {e}")
            return fallback_forensic_result(suspicious)
