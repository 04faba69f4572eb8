"""
Client Onboarding Compliance Engine - Agent exports.
"""

from agents.base import BaseAgent, set_api_key, get_api_key
from agents.risk_analysis import RiskAnalysisAgent, fallback_risk_analysis
from agents.document_forensics import DocumentForensicsAgent, fallback_forensic_result
from agents.entity_search import EntitySearchAgent

__all__ = [
    "BaseAgent",
    "set_api_key",
    "get_api_key",
    # External collaborators
    "RiskAnalysisAgent",
    "DocumentForensicsAgent",
    "EntitySearchAgent",
    # Fallbacks
    "fallback_risk_analysis",
    "fallback_forensic_result",
]
