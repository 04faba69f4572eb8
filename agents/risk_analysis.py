"""
Risk Analysis Agent.
Profile enrichment plus sanctions / PEP / adverse-media screening for a
prospective client, returning a scored risk assessment with candidate hits.
"""

import json

from pydantic import ValidationError

from agents.base import BaseAgent, COMPLIANCE_OUTPUT_RULES
from models import (
    EntityType, RiskAnalysisResult, RiskFactor, RiskLevel, ScreeningResult,
)
from logger import get_logger

logger = get_logger(__name__)


def fallback_risk_analysis() -> RiskAnalysisResult:
    """Conservative result used whenever the service cannot answer."""
    return RiskAnalysisResult(
        risk_score=50,
        risk_level=RiskLevel.MEDIUM,
        risk_factors=[RiskFactor(
            category="System",
            description="AI Analysis Failed - Manual Review Required",
            score=50,
            severity=RiskLevel.MEDIUM,
        )],
        screening_result=ScreeningResult(summary="Automated screening unavailable."),
        enriched_summary="Could not enrich profile due to system error.",
    )


class RiskAnalysisAgent(BaseAgent):
    """Score onboarding risk and surface screening hits for disposition."""

    @property
    def name(self) -> str:
        return "RiskAnalysis"

    @property
    def system_prompt(self) -> str:
        return f"""You are a Financial Crime Risk Engine and KYC analyst assessing a prospective client for onboarding.

## Tasks
1. Enrich the profile from what is publicly known about the entity.
2. Screen for sanctions, Politically Exposed Persons (PEP), relatives or close associates (RCA) and adverse media.
   Names of known political figures or criminals are candidate hits; generic names are clean.
3. Score overall risk 0-100 from entity type, industry, jurisdiction, product and screening outcome.
4. List the specific risk factors behind the score.

## Risk Levels
- Low: 0-24, nothing beyond standard due diligence
- Medium: 25-59, elevated but manageable
- High: 60-100, enhanced due diligence required

{COMPLIANCE_OUTPUT_RULES}

Return JSON with:
- risk_score: integer 0-100
- risk_level: Low | Medium | High
- risk_factors: array of {{category, description, score (0-100), severity (Low | Medium | High)}}
- screening_result: {{sanctions_hit, pep_status, adverse_media_found (booleans), summary,
  hits: array of {{id, name, type (Sanction | PEP | Adverse Media | RCA), score (0-100 match confidence), description, list_source}}}}
- enriched_summary: brief summary of what was found about the entity"""

    async def analyze(self, entity_name: str, entity_type: EntityType, attributes: dict) -> RiskAnalysisResult:
        """Assess one entity. Never raises: failures return fallback_risk_analysis()."""
        type_value = getattr(entity_type, "value", entity_type)
        prompt = f"""Analyze the following entity for onboarding.

Entity Name: {entity_name}
Type: {type_value}
Details: {json.dumps({k: v for k, v in attributes.items() if v}, indent=2)}"""

        try:
            result = await self.run(prompt)
            return self._parse_result(result)
        except Exception as e:
            logger.warning(f"[{self.name}] Risk analysis failed for {entity_name}, using fallback: {e}")
            return fallback_risk_analysis()

    def _parse_result(self, result: dict) -> RiskAnalysisResult:
        """Parse agent response into RiskAnalysisResult."""
        data = result.get("json")
        if not isinstance(data, dict):
            raise ValueError("Risk analysis response contained no JSON object")
        try:
            return RiskAnalysisResult.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Risk analysis response failed validation: {e}") from e
