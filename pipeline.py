"""
Client Onboarding Pipeline

Drives one entity through onboarding and its post-approval life:
1. Intake (attributes, region tax identifiers) - policy re-evaluated on every edit
2. Documentation (upload + forensic verification of every required document)
3. Risk intake (risk-analysis service, screening-hit disposition)
4. Finalisation (final risk determination -> initial queue)
5. Queue decisions (EDD, peer review, waiver, periodic review, off-boarding)

Guards that block progression return a GateResult; illegal lifecycle actions
raise IllegalTransitionError.
"""

from datetime import datetime
from typing import Optional

from rich.console import Console

from logger import get_logger
from config import get_config

logger = get_logger(__name__)

from agents.document_forensics import fallback_forensic_result
from agents.risk_analysis import fallback_risk_analysis
from exceptions import DocumentStateError, IllegalTransitionError
from models import (
    ApplicationStatus, DocumentRequirement, EntityProfile, EntitySearchResult,
    EntityType, GateResult, MatchStatus, Region, ScreeningHit, TaxInfo, VerificationStatus,
)
from entity_store import EntityStore, new_entity_id
from pipeline_review import ReviewMixin
from utilities.document_requirements import evaluate_policy
from utilities.document_verification import DocumentTracker, check_documentation_gate, default_suspicious_hint
from utilities.intake_schema import check_intake, validate_attribute
from utilities.lifecycle import LifecycleAction
from utilities.policy_rules import PolicyRuleSet
from utilities.reference_data import REVIEW_INTERVAL_YEARS
from utilities.screening_disposition import ScreeningDisposition
from utilities.workflow_stats import due_for_periodic_review, status_counts


console = Console(force_terminal=True, legacy_windows=True)


class OnboardingPipeline(ReviewMixin):
    """Orchestrates the onboarding workflow over an in-memory entity store."""

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        risk_service=None,
        forensics_service=None,
        search_service=None,
        rules: Optional[PolicyRuleSet] = None,
        verbose: Optional[bool] = None,
    ):
        self.store = store or EntityStore()
        self.rules = rules
        self.verbose = get_config().verbose if verbose is None else verbose
        self._risk_service = risk_service
        self._forensics_service = forensics_service
        self._search_service = search_service

        # Open screening sessions, keyed by entity id
        self._screenings: dict[str, ScreeningDisposition] = {}

    def log(self, message: str, style: str = ""):
        """Log a message if verbose mode is on."""
        if self.verbose:
            console.print(message, style=style)

    # =========================================================================
    # External collaborators (created on first use)
    # =========================================================================

    @property
    def risk_service(self):
        if self._risk_service is None:
            from agents import RiskAnalysisAgent
            self._risk_service = RiskAnalysisAgent()
        return self._risk_service

    @property
    def forensics_service(self):
        if self._forensics_service is None:
            from agents import DocumentForensicsAgent
            self._forensics_service = DocumentForensicsAgent()
        return self._forensics_service

    @property
    def search_service(self):
        if self._search_service is None:
            from agents import EntitySearchAgent
            self._search_service = EntitySearchAgent()
        return self._search_service

    # =========================================================================
    # Intake
    # =========================================================================

    def get(self, entity_id: str) -> EntityProfile:
        return self.store.get(entity_id)

    def _require_status(self, entity: EntityProfile, status: ApplicationStatus, operation: str):
        if entity.status != status:
            logger.warning(f"{entity.id}: cannot {operation} while {entity.status.value}")
            raise IllegalTransitionError(entity.status, operation, entity.id)

    def _apply_policy(self, entity: EntityProfile, attributes: dict[str, str]) -> EntityProfile:
        evaluation = evaluate_policy(entity.type, attributes, entity.documents, self.rules)
        return entity.model_copy(update={
            "attributes": attributes,
            "name": attributes.get("name") or entity.name,
            "documents": evaluation.documents,
            "active_policies": evaluation.active_policies,
        })

    def create_entity(
        self,
        entity_type: EntityType,
        name: str,
        attributes: Optional[dict[str, str]] = None,
        region: Optional[Region] = None,
        tax_info: Optional[TaxInfo] = None,
    ) -> EntityProfile:
        """Open a Draft entity and compute its initial checklist."""
        entity_type = EntityType(entity_type)
        clean = {
            key: validate_attribute(entity_type, key, value)
            for key, value in (attributes or {}).items()
        }
        clean["name"] = name.strip()

        entity = EntityProfile(
            id=new_entity_id(),
            type=entity_type,
            name=clean["name"],
            region=Region(region) if region else None,
            tax_info=tax_info,
        )
        entity = self._apply_policy(entity, clean)
        self.store.add(entity)
        logger.info(f"Created {entity.type.value} {entity.id} '{entity.name}' with {len(entity.documents)} required documents")
        self.log(f"  Created [bold]{entity.name}[/bold] ({entity.id})")
        return entity

    def create_from_scenario(self, scenario: dict) -> EntityProfile:
        """Create an entity from a scenario / client JSON document."""
        tax_info = scenario.get("tax_info")
        return self.create_entity(
            entity_type=EntityType(scenario["type"]),
            name=scenario["name"],
            attributes=scenario.get("attributes", {}),
            region=scenario.get("region"),
            tax_info=TaxInfo(**tax_info) if tax_info else None,
        )

    def update_attributes(self, entity_id: str, changes: dict[str, str]) -> EntityProfile:
        """
        Edit intake attributes; the checklist is re-evaluated immediately.

        Uploads for requirements that still apply are carried forward. Raises
        DocumentStateError while any document is Scanning.
        """
        def mutate(entity: EntityProfile) -> EntityProfile:
            self._require_status(entity, ApplicationStatus.DRAFT, "update attributes")
            scanning = next(
                (d for d in entity.documents if d.verification_status == VerificationStatus.SCANNING), None
            )
            if scanning is not None:
                raise DocumentStateError(scanning.id, scanning.verification_status, "change attributes affecting")
            attributes = dict(entity.attributes)
            for key, value in changes.items():
                attributes[key] = validate_attribute(entity.type, key, value)
            return self._apply_policy(entity, attributes)

        entity = self.store.update(entity_id, mutate)
        logger.info(f"{entity_id}: attributes updated ({', '.join(changes)}), {len(entity.documents)} documents required")
        return entity

    def set_tax_info(self, entity_id: str, region: Optional[Region], tax_info: Optional[TaxInfo]) -> EntityProfile:
        def mutate(entity: EntityProfile) -> EntityProfile:
            self._require_status(entity, ApplicationStatus.DRAFT, "update tax information")
            return entity.model_copy(update={
                "region": Region(region) if region else None,
                "tax_info": tax_info,
            })

        return self.store.update(entity_id, mutate)

    def check_intake(self, entity_id: str) -> GateResult:
        entity = self.get(entity_id)
        return check_intake(entity.type, entity.attributes, entity.region, entity.tax_info)

    # =========================================================================
    # Documentation
    # =========================================================================

    def _edit_documents(self, entity_id: str, operation: str, edit) -> DocumentRequirement:
        """Run `edit(tracker)` against the stored checklist atomically."""
        touched: list[DocumentRequirement] = []

        def mutate(entity: EntityProfile) -> EntityProfile:
            self._require_status(entity, ApplicationStatus.DRAFT, operation)
            tracker = DocumentTracker(entity.documents)
            touched.append(edit(tracker))
            return entity.model_copy(update={"documents": tracker.documents})

        self.store.update(entity_id, mutate)
        return touched[0]

    async def upload_document(self, entity_id: str, doc_id: str, suspicious: Optional[bool] = None) -> DocumentRequirement:
        """
        Upload a document and run forensics on it.

        The document sits in Scanning while the forensics call is outstanding;
        the verdict is applied to whatever the checklist holds at completion.
        """
        doc = self._edit_documents(entity_id, "upload documents", lambda t: t.begin_verification(doc_id))
        hint = default_suspicious_hint(doc.name) if suspicious is None else suspicious

        self.log(f"  Scanning {doc.name}...")
        try:
            result = await self.forensics_service.verify(doc.name, hint)
        except Exception as e:
            logger.warning(f"{entity_id}: forensics failed for '{doc.name}', using fallback: {e}")
            result = fallback_forensic_result(hint)

        doc = self._edit_documents(
            entity_id, "upload documents", lambda t: t.complete_verification(doc_id, result)
        )
        style = "red" if result.is_forged else "green"
        self.log(f"  [{style}]{doc.name}: {doc.verification_status.value} ({result.score})[/{style}]")
        return doc

    def remove_document(self, entity_id: str, doc_id: str) -> DocumentRequirement:
        return self._edit_documents(entity_id, "remove documents", lambda t: t.remove(doc_id))

    async def upload_all_documents(self, entity_id: str, suspicious: Optional[dict[str, bool]] = None) -> GateResult:
        """Upload every Pending document in checklist order, then check the gate."""
        suspicious = suspicious or {}
        for doc in self.get(entity_id).documents:
            if doc.uploaded:
                continue
            await self.upload_document(entity_id, doc.id, suspicious.get(doc.name))
        return self.check_documentation(entity_id)

    def check_documentation(self, entity_id: str) -> GateResult:
        return check_documentation_gate(self.get(entity_id).documents)

    # =========================================================================
    # Risk Intake & Screening
    # =========================================================================

    async def submit_for_screening(self, entity_id: str) -> GateResult:
        """
        Leave intake and run the risk-analysis service.

        Blocked (GateResult.allowed False) while intake is incomplete or any
        document is not Verified. While the service call is outstanding the
        entity sits in Pending Screening.
        """
        entity = self.get(entity_id)
        for gate in (self.check_intake(entity_id), check_documentation_gate(entity.documents)):
            if not gate.allowed:
                logger.warning(f"{entity_id}: submission blocked - {gate.reason}")
                self.log(f"  [yellow]Blocked:[/yellow] {gate.reason}")
                return gate

        entity = self.store.transition(entity_id, LifecycleAction.SUBMIT_FOR_SCREENING)
        self.log(f"  Running risk analysis for [bold]{entity.name}[/bold]...")
        try:
            result = await self.risk_service.analyze(entity.name, entity.type, entity.attributes)
        except Exception as e:
            logger.warning(f"{entity_id}: risk analysis failed, using fallback: {e}")
            result = fallback_risk_analysis()

        session = ScreeningDisposition(result)
        self._screenings[entity_id] = session
        self.store.update(entity_id, lambda e: e.model_copy(update={
            "risk_score": session.result.risk_score,
            "risk_level": session.result.risk_level,
            "risk_factors": session.result.risk_factors,
            "screening_result": session.result.screening_result.model_copy(deep=True),
            "enriched_data": session.result.enriched_summary,
        }))
        logger.info(
            f"{entity_id}: service risk {result.risk_level.value} ({result.risk_score}), "
            f"{len(session.hits)} screening hit(s)"
        )
        return GateResult(allowed=True, reason=f"{len(session.pending_hits)} hit(s) awaiting disposition")

    def screening(self, entity_id: str) -> ScreeningDisposition:
        """Open screening session. Raises KeyError if none."""
        return self._screenings[entity_id]

    def pending_hits(self, entity_id: str) -> list[ScreeningHit]:
        return self.screening(entity_id).pending_hits

    def disposition_hit(self, entity_id: str, hit_id: str, outcome: MatchStatus) -> ScreeningHit:
        session = self.screening(entity_id)
        hit = session.disposition(hit_id, outcome)
        self.store.update(entity_id, lambda e: e.model_copy(update={
            "screening_result": session.result.screening_result.model_copy(deep=True),
        }))
        return hit

    def finalize(self, entity_id: str, force_peer_review: bool = False) -> GateResult:
        """
        Compute the final risk determination and route the entity to its
        first queue. Blocked while any hit is Potential or any document is
        not Verified.
        """
        entity = self.get(entity_id)
        self._require_status(entity, ApplicationStatus.PENDING_SCREENING, "finalize screening")

        docs_gate = check_documentation_gate(entity.documents)
        if not docs_gate.allowed:
            logger.warning(f"{entity_id}: finalisation blocked - {docs_gate.reason}")
            return docs_gate

        session = self.screening(entity_id)
        determination = session.finalize()
        if determination is None:
            return session.check_gate()

        entity = self.store.transition(
            entity_id,
            LifecycleAction.FINALIZE_SCREENING,
            determination=determination,
            force_peer_review=force_peer_review,
        )
        del self._screenings[entity_id]

        reason = f"Routed to {entity.status.value}"
        if determination.status_hint:
            reason += f": {determination.status_hint}"
        self.log(f"  [bold]{entity.name}[/bold] {reason}")
        return GateResult(allowed=True, reason=reason)

    # =========================================================================
    # Queue Decisions
    # =========================================================================

    def decide(self, entity_id: str, action: LifecycleAction, reason: Optional[str] = None) -> EntityProfile:
        """Apply a queue decision. Raises IllegalTransitionError if not permitted."""
        entity = self.store.transition(entity_id, LifecycleAction(action), reason=reason)
        self.log(f"  {entity.name}: {entity.status.value}")
        return entity

    def approve(self, entity_id: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.APPROVE)

    def reject(self, entity_id: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.REJECT)

    def request_waiver(self, entity_id: str, reason: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.REQUEST_WAIVER, reason)

    def grant_waiver(self, entity_id: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.GRANT_WAIVER)

    def deny_waiver(self, entity_id: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.DENY_WAIVER)

    def confirm_review(self, entity_id: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.CONFIRM_REVIEW)

    def retrigger_edd(self, entity_id: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.RETRIGGER_EDD)

    def trigger_periodic_review(self, entity_id: str, trigger: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.TRIGGER_PERIODIC_REVIEW, trigger)

    def request_offboarding(self, entity_id: str, reason: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.REQUEST_OFFBOARDING, reason)

    def confirm_offboarding(self, entity_id: str) -> EntityProfile:
        return self.decide(entity_id, LifecycleAction.CONFIRM_OFFBOARDING)

    def trigger_scheduled_reviews(self, now: Optional[datetime] = None) -> list[EntityProfile]:
        """Move every Approved entity whose review date has passed into Periodic Review."""
        moved = []
        for entity in due_for_periodic_review(self.store.all(), now):
            level = entity.risk_level.value
            trigger = f"Scheduled Review ({REVIEW_INTERVAL_YEARS[level]} Year - {level} Risk)"
            moved.append(self.trigger_periodic_review(entity.id, trigger))
        if moved:
            logger.info(f"Scheduled periodic review triggered for {len(moved)} entities")
        return moved

    # =========================================================================
    # Read side
    # =========================================================================

    def queue(self, status: ApplicationStatus) -> list[EntityProfile]:
        return [e for e in self.store.all() if e.status == status]

    def stats(self) -> dict[str, int]:
        return status_counts(self.store.all())

    async def search(self, query: str) -> EntitySearchResult:
        """Natural-language lookup over every stored entity."""
        if not query.strip():
            return EntitySearchResult(reason="Empty query")
        try:
            return await self.search_service.search(query, self.store.all())
        except Exception as e:
            logger.warning(f"Entity search failed, returning no matches: {e}")
            return EntitySearchResult(reason="Search service unavailable.")
