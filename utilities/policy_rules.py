"""
Policy rule tables.

The five additive rule tables (base, industry, product, jurisdiction,
keyword) are loaded from a versioned JSON policy document so that rules
can change and be tested independently of the engine.
"""

import json
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from config import get_config
from exceptions import PolicyConfigError
from logger import get_logger
from models import EntityType

logger = get_logger(__name__)

_NACE_PREFIX = re.compile(r"^[A-Z]\s*-\s*")


class DocumentRule(BaseModel):
    """A document added by a rule."""
    name: str
    description: str = ""


class KeywordDocumentRule(DocumentRule):
    """A document added by a keyword match, with the policy that demands it."""
    reason: str


class PolicyRuleSet(BaseModel):
    """Parsed policy document."""
    version: str = "unversioned"
    jurisdiction_fields: list[str] = Field(default_factory=lambda: ["country", "nationality"])
    free_text_fields: list[str] = Field(default_factory=lambda: ["occupation", "business_activity", "name"])
    base_requirements: dict[EntityType, list[DocumentRule]] = Field(default_factory=dict)
    industry_requirements: dict[str, list[DocumentRule]] = Field(default_factory=dict)
    product_requirements: dict[str, list[DocumentRule]] = Field(default_factory=dict)
    high_risk_jurisdictions: list[str] = Field(default_factory=list)
    jurisdiction_requirements: list[DocumentRule] = Field(default_factory=list)
    keyword_requirements: dict[str, list[KeywordDocumentRule]] = Field(default_factory=dict)

    @field_validator("industry_requirements")
    @classmethod
    def _normalise_industry_keys(cls, table: dict[str, list[DocumentRule]]) -> dict[str, list[DocumentRule]]:
        return {normalise_sector(k): v for k, v in table.items()}

    @field_validator("keyword_requirements")
    @classmethod
    def _lowercase_keywords(cls, table: dict[str, list[KeywordDocumentRule]]) -> dict[str, list[KeywordDocumentRule]]:
        return {k.lower(): v for k, v in table.items()}

    def industry_documents(self, industry: str) -> list[DocumentRule]:
        return self.industry_requirements.get(normalise_sector(industry), [])

    def is_high_risk_jurisdiction(self, country: str) -> bool:
        return country.strip() in self.high_risk_jurisdictions


def normalise_sector(value: str) -> str:
    """Strip the NACE letter prefix: 'B - Mining and Quarrying' -> 'Mining and Quarrying'."""
    return _NACE_PREFIX.sub("", value.strip())


# Cache keyed by resolved path
_rule_cache: dict[str, PolicyRuleSet] = {}


def load_policy_rules(path: Optional[str] = None) -> PolicyRuleSet:
    """
    Load and validate a policy document.

    Args:
        path: JSON policy document; defaults to Config.policy_path

    Raises:
        PolicyConfigError: file missing, not JSON, or fails schema validation
    """
    policy_path = Path(path or get_config().policy_path).resolve()
    key = str(policy_path)
    if key in _rule_cache:
        return _rule_cache[key]

    if not policy_path.exists():
        raise PolicyConfigError(f"Policy document not found: {policy_path}", {"path": key})

    try:
        raw = json.loads(policy_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise PolicyConfigError(f"Policy document is not valid JSON: {e}", {"path": key}) from e

    try:
        rules = PolicyRuleSet(**raw)
    except ValidationError as e:
        raise PolicyConfigError(f"Policy document failed validation: {e}", {"path": key}) from e

    logger.info(f"Loaded policy document {rules.version} from {policy_path.name}")
    _rule_cache[key] = rules
    return rules


def clear_policy_cache():
    """Forget previously loaded policy documents."""
    _rule_cache.clear()
