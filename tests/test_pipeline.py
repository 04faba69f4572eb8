"""End-to-end tests for the onboarding pipeline, driven with fake services."""

import asyncio
from datetime import datetime, timedelta

import pytest

from exceptions import DocumentStateError, IllegalTransitionError
from models import (
    ApplicationStatus, ApprovedBy, EntityType, MatchStatus,
    RiskAnalysisResult, RiskLevel, TaxInfo, VerificationStatus,
)
from agents.document_forensics import fallback_forensic_result
from fakes import FailingService, FakeSearch, hit, risk_result


def _service_result(case) -> RiskAnalysisResult:
    return RiskAnalysisResult(**case["risk_analysis"])


def _onboard(pipeline, case):
    """Create, document and submit a scenario; returns the entity id."""
    entity = pipeline.create_from_scenario(case)
    gate = asyncio.run(pipeline.upload_all_documents(entity.id))
    assert gate.allowed, gate.reason
    assert asyncio.run(pipeline.submit_for_screening(entity.id)).allowed
    return entity.id


def _minimal_company(pipeline, **attrs):
    attributes = {
        "email": "ops@example.com",
        "industry": "H - Transportation and Storage",
        "product": "Business Checking Account",
    }
    attributes.update(attrs)
    return pipeline.create_entity(EntityType.COMPANY, "Northwind Freight", attributes)


class TestScenarios:
    def test_clean_individual_auto_approved(self, make_pipeline, ind_low):
        pipeline = make_pipeline(_service_result(ind_low))
        entity_id = _onboard(pipeline, ind_low)

        entity = pipeline.get(entity_id)
        assert entity.status == ApplicationStatus.PENDING_SCREENING
        assert entity.enriched_data.startswith("Salaried")
        with pytest.raises(KeyError):
            pipeline.pending_hits("ENT-UNKNOWN0")
        assert pipeline.pending_hits(entity_id) == []

        gate = pipeline.finalize(entity_id)
        assert gate.allowed
        entity = pipeline.get(entity_id)
        assert entity.status == ApplicationStatus.APPROVED
        assert entity.approved_by == ApprovedBy.AUTOMATED_AGENT
        assert entity.risk_score == 12
        assert entity.next_review_date is not None

    def test_service_sees_entity_attributes(self, make_pipeline, ind_low):
        pipeline = make_pipeline(_service_result(ind_low))
        _onboard(pipeline, ind_low)
        name, entity_type, attributes = pipeline.risk_service.calls[0]
        assert name == "Sarah Jenkins"
        assert entity_type == EntityType.INDIVIDUAL
        assert attributes["nationality"] == "United States"

    def test_checklist_sizes(self, make_pipeline, ind_low, ind_high, co_low, co_high):
        pipeline = make_pipeline(risk_result())
        sizes = [len(pipeline.create_from_scenario(c).documents) for c in (ind_low, ind_high, co_low, co_high)]
        assert sizes == [3, 5, 5, 10]

    def test_high_risk_company(self, make_pipeline, co_high):
        pipeline = make_pipeline(_service_result(co_high))
        entity_id = _onboard(pipeline, co_high)
        entity = pipeline.get(entity_id)
        assert "Arms Dealer License" in [d.name for d in entity.documents]
        assert "Enhanced Due Diligence: Iran" in entity.active_policies

        assert [h.id for h in pipeline.pending_hits(entity_id)] == ["HIT-2001", "HIT-2002"]
        pipeline.disposition_hit(entity_id, "HIT-2001", MatchStatus.MATCHED)
        pipeline.disposition_hit(entity_id, "HIT-2002", MatchStatus.UNMATCHED)

        gate = pipeline.finalize(entity_id)
        assert gate.allowed
        assert "requires enhanced due diligence" in gate.reason
        entity = pipeline.get(entity_id)
        assert entity.status == ApplicationStatus.EDD_REVIEW
        assert entity.risk_score == 95
        assert [h.status for h in entity.screening_result.hits] == [MatchStatus.MATCHED, MatchStatus.UNMATCHED]

    def test_pep_false_positives_go_to_edd_on_service_level(self, make_pipeline, ind_high):
        pipeline = make_pipeline(_service_result(ind_high))
        entity_id = _onboard(pipeline, ind_high)
        for h in pipeline.pending_hits(entity_id):
            pipeline.disposition_hit(entity_id, h.id, MatchStatus.UNMATCHED)
        pipeline.finalize(entity_id)
        entity = pipeline.get(entity_id)
        assert entity.status == ApplicationStatus.EDD_REVIEW
        assert entity.risk_score == 82


class TestScreeningOverride:
    def test_matched_hit_forces_edd(self, make_pipeline, co_low):
        pipeline = make_pipeline(risk_result(level="Low", score=10, hits=[hit("h1", score=70)]))
        entity_id = _onboard(pipeline, co_low)
        pipeline.disposition_hit(entity_id, "h1", MatchStatus.MATCHED)
        pipeline.finalize(entity_id)
        entity = pipeline.get(entity_id)
        assert entity.status == ApplicationStatus.EDD_REVIEW
        assert entity.risk_level == RiskLevel.HIGH
        assert entity.risk_score == 95

    def test_finalize_blocked_until_every_hit_disposed(self, make_pipeline, co_low):
        pipeline = make_pipeline(risk_result(hits=[hit("h1"), hit("h2")]))
        entity_id = _onboard(pipeline, co_low)
        pipeline.disposition_hit(entity_id, "h1", MatchStatus.UNMATCHED)

        gate = pipeline.finalize(entity_id)
        assert gate.allowed is False
        assert gate.blocking == ["h2"]
        assert pipeline.get(entity_id).status == ApplicationStatus.PENDING_SCREENING

    def test_false_positives_low_score_auto_approved(self, make_pipeline, co_low):
        pipeline = make_pipeline(risk_result(level="Low", score=18, hits=[hit("h1")]))
        entity_id = _onboard(pipeline, co_low)
        pipeline.disposition_hit(entity_id, "h1", "Unmatched")
        pipeline.finalize(entity_id)
        assert pipeline.get(entity_id).approved_by == ApprovedBy.AUTOMATED_AGENT

    def test_medium_risk_to_peer_review(self, make_pipeline, co_low):
        pipeline = make_pipeline(risk_result(level="Medium", score=45))
        entity_id = _onboard(pipeline, co_low)
        pipeline.finalize(entity_id)
        assert pipeline.get(entity_id).status == ApplicationStatus.PEER_REVIEW

    def test_force_peer_review(self, make_pipeline, ind_low):
        pipeline = make_pipeline(_service_result(ind_low))
        entity_id = _onboard(pipeline, ind_low)
        pipeline.finalize(entity_id, force_peer_review=True)
        entity = pipeline.get(entity_id)
        assert entity.status == ApplicationStatus.PEER_REVIEW
        assert entity.approved_by is None

    def test_finalize_twice_refused(self, make_pipeline, ind_low):
        pipeline = make_pipeline(_service_result(ind_low))
        entity_id = _onboard(pipeline, ind_low)
        pipeline.finalize(entity_id)
        with pytest.raises(IllegalTransitionError):
            pipeline.finalize(entity_id)


class TestDocumentationGate:
    def test_flagged_document_blocks_then_recovers(self, make_pipeline, co_low):
        pipeline = make_pipeline(risk_result())
        entity = pipeline.create_from_scenario(co_low)

        gate = asyncio.run(pipeline.upload_all_documents(entity.id, {"Board Resolution": True}))
        assert gate.allowed is False
        assert gate.blocking == ["Board Resolution"]

        gate = asyncio.run(pipeline.submit_for_screening(entity.id))
        assert gate.allowed is False
        assert pipeline.get(entity.id).status == ApplicationStatus.DRAFT
        assert pipeline.risk_service.calls == []

        doc_id = next(d.id for d in pipeline.get(entity.id).documents if d.name == "Board Resolution")
        with pytest.raises(DocumentStateError):
            asyncio.run(pipeline.upload_document(entity.id, doc_id, suspicious=False))
        removed = pipeline.remove_document(entity.id, doc_id)
        assert removed.verification_status == VerificationStatus.PENDING

        doc = asyncio.run(pipeline.upload_document(entity.id, doc_id, suspicious=False))
        assert doc.verification_status == VerificationStatus.VERIFIED
        assert pipeline.check_documentation(entity.id).allowed
        assert asyncio.run(pipeline.submit_for_screening(entity.id)).allowed

    def test_document_name_hint(self, make_pipeline, forensics):
        pipeline = make_pipeline(risk_result())
        entity = _minimal_company(pipeline, business_activity="fake shipping agency")
        asyncio.run(pipeline.upload_all_documents(entity.id))
        names_hinted = {name: suspicious for name, suspicious in forensics.calls}
        assert names_hinted["Bill of Lading Sample"] is False

    def test_documents_frozen_after_submission(self, make_pipeline, ind_low):
        pipeline = make_pipeline(_service_result(ind_low))
        entity_id = _onboard(pipeline, ind_low)
        doc_id = pipeline.get(entity_id).documents[0].id
        with pytest.raises(IllegalTransitionError):
            pipeline.remove_document(entity_id, doc_id)


class TestIntake:
    def test_missing_required_fields_block_submission(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        entity = pipeline.create_entity(EntityType.COMPANY, "Half Done Ltd", {"email": "a@b.c"})
        asyncio.run(pipeline.upload_all_documents(entity.id))

        gate = asyncio.run(pipeline.submit_for_screening(entity.id))
        assert gate.allowed is False
        assert "Industry (NACE Code)" in gate.blocking
        assert "Requested Financial Service / Product" in gate.blocking

    def test_region_tax_identifiers(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        entity = _minimal_company(pipeline)
        pipeline.set_tax_info(entity.id, "EU", TaxInfo(tin="DE123"))
        gate = pipeline.check_intake(entity.id)
        assert gate.allowed is False
        assert gate.blocking == ["CRS Classification"]

        pipeline.set_tax_info(entity.id, "EU", TaxInfo(tin="DE123", crs_number="Active NFE"))
        assert pipeline.check_intake(entity.id).allowed

    def test_invalid_picklist_value(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        with pytest.raises(ValueError):
            _minimal_company(pipeline, product="Magic Beans")

    def test_attribute_edit_reevaluates_checklist(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        entity = _minimal_company(pipeline)
        assert len(entity.documents) == 5
        base_id = entity.documents[0].id
        asyncio.run(pipeline.upload_document(entity.id, base_id))

        entity = pipeline.update_attributes(entity.id, {"country": "Panama"})
        names = [d.name for d in entity.documents]
        assert "Enhanced Due Diligence Form" in names
        assert entity.documents[0].verification_status == VerificationStatus.VERIFIED

        entity = pipeline.update_attributes(entity.id, {"country": ""})
        assert "Enhanced Due Diligence Form" not in [d.name for d in entity.documents]

    def test_attribute_edit_rejected_while_scanning(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        entity = _minimal_company(pipeline, country="Panama")
        doc_id = next(d.id for d in entity.documents if d.name == "Local Counsel Opinion")
        seen = {}

        class EditingForensics:
            async def verify(self, name, suspicious):
                with pytest.raises(DocumentStateError):
                    pipeline.update_attributes(entity.id, {"country": "Germany"})
                seen["rejected"] = True
                return fallback_forensic_result(suspicious)

        pipeline._forensics_service = EditingForensics()
        doc = asyncio.run(pipeline.upload_document(entity.id, doc_id, suspicious=False))

        assert seen["rejected"] is True
        assert doc.verification_status == VerificationStatus.VERIFIED
        assert pipeline.get(entity.id).attributes["country"] == "Panama"

        entity = pipeline.update_attributes(entity.id, {"country": "Germany"})
        assert "Local Counsel Opinion" not in [d.name for d in entity.documents]

    def test_numeric_attribute_values_accepted(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        entity = _minimal_company(pipeline, volume=5000)
        assert entity.attributes["volume"] == "5000"

    def test_rename_through_attributes(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        entity = _minimal_company(pipeline)
        entity = pipeline.update_attributes(entity.id, {"name": "Royal Casino Holdings"})
        assert entity.name == "Royal Casino Holdings"
        assert "Gaming License" in [d.name for d in entity.documents]


class TestQueueLifecycle:
    def _peer_review(self, make_pipeline, co_low):
        pipeline = make_pipeline(risk_result(level="Medium", score=40))
        entity_id = _onboard(pipeline, co_low)
        pipeline.finalize(entity_id)
        return pipeline, entity_id

    def test_rejection_is_final(self, make_pipeline, co_low):
        pipeline, entity_id = self._peer_review(make_pipeline, co_low)
        pipeline.reject(entity_id)
        assert pipeline.get(entity_id).status == ApplicationStatus.REJECTED
        with pytest.raises(IllegalTransitionError):
            pipeline.approve(entity_id)

    def test_edd_waiver_granted(self, make_pipeline, co_high):
        pipeline = make_pipeline(_service_result(co_high))
        entity_id = _onboard(pipeline, co_high)
        for h in pipeline.pending_hits(entity_id):
            pipeline.disposition_hit(entity_id, h.id, MatchStatus.UNMATCHED)
        pipeline.finalize(entity_id)

        pipeline.request_waiver(entity_id, "Senior management sign-off")
        assert pipeline.get(entity_id).waiver_reason == "Senior management sign-off"
        entity = pipeline.grant_waiver(entity_id)
        assert entity.status == ApplicationStatus.APPROVED
        assert entity.approved_by == ApprovedBy.ANALYST

    def test_periodic_review_and_offboarding(self, make_pipeline, co_low):
        pipeline, entity_id = self._peer_review(make_pipeline, co_low)
        pipeline.approve(entity_id)
        pipeline.trigger_periodic_review(entity_id, "Adverse Media Alert: Negative news detected")
        assert pipeline.queue(ApplicationStatus.PERIODIC_REVIEW)[0].id == entity_id

        pipeline.retrigger_edd(entity_id)
        pipeline.approve(entity_id)
        pipeline.request_offboarding(entity_id, "Bank Decision: Risk Appetite Exceeded")
        entity = pipeline.confirm_offboarding(entity_id)
        assert entity.status == ApplicationStatus.OFFBOARDED

        with pytest.raises(IllegalTransitionError):
            pipeline.approve(entity_id)
        assert pipeline.get(entity_id).status == ApplicationStatus.OFFBOARDED

    def test_scheduled_reviews(self, make_pipeline, co_low):
        pipeline, entity_id = self._peer_review(make_pipeline, co_low)
        pipeline.approve(entity_id)
        review_date = pipeline.get(entity_id).next_review_date

        assert pipeline.trigger_scheduled_reviews(now=review_date - timedelta(days=1)) == []
        moved = pipeline.trigger_scheduled_reviews(now=review_date + timedelta(days=1))
        assert [e.id for e in moved] == [entity_id]
        assert moved[0].review_trigger == "Scheduled Review (3 Year - Medium Risk)"

        entity = pipeline.confirm_review(entity_id)
        assert entity.status == ApplicationStatus.APPROVED
        assert entity.last_review_date is not None
        assert entity.next_review_date >= review_date

    def test_stats(self, make_pipeline, ind_low, co_low):
        pipeline = make_pipeline(_service_result(ind_low))
        entity_id = _onboard(pipeline, ind_low)
        pipeline.finalize(entity_id)
        pipeline.create_from_scenario(co_low)

        stats = pipeline.stats()
        assert stats["Approved"] == 1
        assert stats["automated_approvals"] == 1
        assert stats["Draft"] == 1
        assert stats["Rejected"] == 0


class TestServiceFailures:
    def test_risk_service_error_uses_fallback(self, make_pipeline, co_low):
        pipeline = make_pipeline(risk_result())
        pipeline._risk_service = FailingService()
        entity_id = _onboard(pipeline, co_low)

        entity = pipeline.get(entity_id)
        assert entity.status == ApplicationStatus.PENDING_SCREENING
        assert entity.risk_level == RiskLevel.MEDIUM
        assert entity.risk_score == 50
        assert pipeline.pending_hits(entity_id) == []

        assert pipeline.finalize(entity_id).allowed
        assert pipeline.get(entity_id).status == ApplicationStatus.PEER_REVIEW

    def test_forensics_error_uses_hint_fallback(self, make_pipeline):
        pipeline = make_pipeline(risk_result())
        pipeline._forensics_service = FailingService("forensics down")
        entity = _minimal_company(pipeline)
        first, second = entity.documents[0].id, entity.documents[1].id

        doc = asyncio.run(pipeline.upload_document(entity.id, first, suspicious=False))
        assert doc.verification_status == VerificationStatus.VERIFIED

        doc = asyncio.run(pipeline.upload_document(entity.id, second, suspicious=True))
        assert doc.verification_status == VerificationStatus.FLAGGED
        assert doc.forensic_analysis.is_forged is True

        removed = pipeline.remove_document(entity.id, second)
        assert removed.verification_status == VerificationStatus.PENDING
        assert pipeline._forensics_service.calls == 2

    def test_search_error_returns_no_matches(self, make_pipeline, ind_low):
        pipeline = make_pipeline(risk_result(), search=FailingService())
        pipeline.create_from_scenario(ind_low)
        result = asyncio.run(pipeline.search("sanctioned companies"))
        assert result.matched_ids == []


class TestSearch:
    def test_search_passes_all_entities(self, make_pipeline, ind_low, co_low):
        search = FakeSearch(["ENT-X"])
        pipeline = make_pipeline(risk_result(), search=search)
        a = pipeline.create_from_scenario(ind_low)
        b = pipeline.create_from_scenario(co_low)

        result = asyncio.run(pipeline.search("high risk companies"))
        assert result.matched_ids == ["ENT-X"]
        assert search.queries == [("high risk companies", [a.id, b.id])]

    def test_empty_query_skips_service(self, make_pipeline):
        search = FakeSearch()
        pipeline = make_pipeline(risk_result(), search=search)
        result = asyncio.run(pipeline.search("   "))
        assert result.matched_ids == []
        assert search.queries == []


def test_created_at_is_set(make_pipeline, ind_low):
    pipeline = make_pipeline(risk_result())
    entity = pipeline.create_from_scenario(ind_low)
    assert entity.created_at <= datetime.now()
    assert entity.attributes["name"] == "Sarah Jenkins"
