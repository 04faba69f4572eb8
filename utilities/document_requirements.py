"""
Document Requirements Policy Engine.

Derives an entity's evidence checklist from its type and attributes by
layering the additive rule tables of the policy document:

    base -> industry -> product -> high-risk jurisdiction -> keyword

Documents are deduplicated by name (first trigger wins) and merged with the
previous checklist so that uploads and verification results survive
attribute edits. Pure deterministic logic, no API calls.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from logger import get_logger
from models import DocumentCategory, DocumentRequirement, EntityType
from utilities.policy_rules import DocumentRule, PolicyRuleSet, load_policy_rules

logger = get_logger(__name__)


@dataclass
class PolicyEvaluation:
    """Checklist plus the labels of the policies that produced it."""
    documents: list[DocumentRequirement] = field(default_factory=list)
    active_policies: list[str] = field(default_factory=list)


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _attr(attributes: dict[str, str], key: str) -> str:
    return (attributes.get(key) or "").strip()


class _ChecklistBuilder:
    """Accumulates requirements in trigger order, first name wins."""

    def __init__(self):
        self.documents: list[DocumentRequirement] = []
        self.policies: list[str] = []
        self._names: set[str] = set()

    def add(self, source: str, rule: DocumentRule, category: DocumentCategory, reason: str):
        if rule.name in self._names:
            return
        self._names.add(rule.name)
        self.documents.append(DocumentRequirement(
            id=f"{source}-{_slug(rule.name)}",
            name=rule.name,
            description=rule.description,
            category=category,
            trigger_reason=reason,
        ))

    def policy(self, label: str):
        if label not in self.policies:
            self.policies.append(label)


def _merge_previous(
    documents: list[DocumentRequirement],
    previous: Optional[list[DocumentRequirement]],
) -> list[DocumentRequirement]:
    """Carry upload state forward for requirements that are still applicable."""
    if not previous:
        return documents

    prior = {d.name: d for d in previous}
    merged = []
    for doc in documents:
        old = prior.get(doc.name)
        if old is None:
            merged.append(doc)
            continue
        merged.append(doc.model_copy(update={
            "uploaded": old.uploaded,
            "verification_status": old.verification_status,
            "forensic_analysis": old.forensic_analysis,
        }))
    return merged


def evaluate_policy(
    entity_type: EntityType,
    attributes: dict[str, str],
    previous: Optional[list[DocumentRequirement]] = None,
    rules: Optional[PolicyRuleSet] = None,
) -> PolicyEvaluation:
    """
    Evaluate every rule table against an entity's attributes.

    Args:
        entity_type: Determines the base document set
        attributes: Current intake attributes (open key-value map)
        previous: Checklist to merge upload state from
        rules: Policy document; defaults to the configured one

    Returns:
        PolicyEvaluation with the merged checklist and active policy labels
    """
    rules = rules or load_policy_rules()
    builder = _ChecklistBuilder()

    # 1. Base requirements for the entity type
    builder.policy(f"Standard KYC: {entity_type.value}")
    for rule in rules.base_requirements.get(entity_type, []):
        builder.add("base", rule, DocumentCategory.STANDARD, "Standard Policy")

    # 2. Classification attributes
    industry = _attr(attributes, "industry")
    if industry:
        industry_rules = rules.industry_documents(industry)
        if industry_rules:
            builder.policy("Sector Specific Risk Policy")
        for rule in industry_rules:
            builder.add("ind", rule, DocumentCategory.RISK, f"Industry: {industry}")

    product = _attr(attributes, "product")
    if product and product in rules.product_requirements:
        builder.policy("Financial Product Compliance")
        for rule in rules.product_requirements[product]:
            builder.add("prod", rule, DocumentCategory.PRODUCT, f"Product: {product}")

    jurisdiction = next(
        (v for v in (_attr(attributes, k) for k in rules.jurisdiction_fields) if v), ""
    )
    if jurisdiction and rules.is_high_risk_jurisdiction(jurisdiction):
        builder.policy(f"Enhanced Due Diligence: {jurisdiction}")
        for rule in rules.jurisdiction_requirements:
            builder.add("jur", rule, DocumentCategory.JURISDICTION, f"High Risk Jurisdiction: {jurisdiction}")

    # 3. Keyword scan over the free-text haystack
    haystack = " ".join(_attr(attributes, k) for k in rules.free_text_fields).lower()
    for keyword, keyword_rules in rules.keyword_requirements.items():
        if keyword not in haystack:
            continue
        builder.policy(f"Policy Trigger: {keyword.upper()}")
        for rule in keyword_rules:
            builder.add("key", rule, DocumentCategory.RISK, rule.reason)

    documents = _merge_previous(builder.documents, previous)
    logger.debug(
        f"Policy {rules.version}: {len(documents)} documents for {entity_type.value} "
        f"({', '.join(builder.policies)})"
    )
    return PolicyEvaluation(documents=documents, active_policies=builder.policies)


def evaluate_document_requirements(
    entity_type: EntityType,
    attributes: dict[str, str],
    previous: Optional[list[DocumentRequirement]] = None,
    rules: Optional[PolicyRuleSet] = None,
) -> list[DocumentRequirement]:
    """Checklist only; see evaluate_policy()."""
    return evaluate_policy(entity_type, attributes, previous, rules).documents
