"""
Pydantic models for the Client Onboarding Compliance Engine.

Defines the data structures shared by the core:
1. Intake (entity profile, attributes, tax info)
2. Documentation (requirements checklist, forensic results)
3. Risk intake & screening (risk service output, screening hits)
4. Lifecycle (status, approval, queue context fields)
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime


# =============================================================================
# Enums
# =============================================================================

class EntityType(str, Enum):
    INDIVIDUAL = "Individual"
    COMPANY = "Company"
    JOINT_VENTURE = "Joint Venture"
    NGO = "NGO"
    PARTNERSHIP = "Partnership"
    TRUST = "Trust"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ApplicationStatus(str, Enum):
    """Lifecycle state of an entity."""
    DRAFT = "Draft"
    PENDING_SCREENING = "Pending Screening"
    PEER_REVIEW = "Peer Review"               # Low/Medium risk awaiting final check
    EDD_REVIEW = "EDD Review"                 # High risk / sanctions
    WAIVER_REQUESTED = "Waiver Requested"     # Policy exception needed
    PERIODIC_REVIEW = "Periodic Review"       # PKYC: scheduled or event-driven
    OFFBOARDING_REQUESTED = "Off-boarding"    # Client requested exit
    APPROVED = "Approved"
    REJECTED = "Rejected"
    OFFBOARDED = "Off-boarded"


class VerificationStatus(str, Enum):
    PENDING = "Pending"
    SCANNING = "Scanning"
    VERIFIED = "Verified"
    FLAGGED = "Flagged"


class DocumentCategory(str, Enum):
    STANDARD = "Standard"
    RISK = "Risk"
    PRODUCT = "Product"
    JURISDICTION = "Jurisdiction"


class ScreeningHitType(str, Enum):
    SANCTION = "Sanction"
    PEP = "PEP"
    ADVERSE_MEDIA = "Adverse Media"
    RCA = "RCA"  # Relative or close associate


class MatchStatus(str, Enum):
    """Operator disposition of a screening hit."""
    POTENTIAL = "Potential"
    MATCHED = "Matched"
    UNMATCHED = "Unmatched"
    UNABLE_TO_RESOLVE = "Unable to Resolve"


class ApprovedBy(str, Enum):
    AUTOMATED_AGENT = "AutomatedAgent"
    ANALYST = "Analyst"


class Region(str, Enum):
    USA = "USA"
    EU = "EU"
    APAC = "APAC"


# Forensic factor enums
class MetadataCheck(str, Enum):
    CONSISTENT = "Consistent"
    INCONSISTENT = "Inconsistent"
    MISSING = "Missing"


class CompressionCheck(str, Enum):
    """Error level analysis."""
    PASS = "Pass"
    FAIL = "Fail"
    INCONCLUSIVE = "Inconclusive"


class TypographyCheck(str, Enum):
    CONSISTENT = "Consistent"
    MANIPULATION_DETECTED = "Manipulation Detected"


class PixelPatternCheck(str, Enum):
    NATURAL = "Natural"
    ARTIFACTS_DETECTED = "Artifacts Detected"


# =============================================================================
# Documentation
# =============================================================================

class ForensicFactors(BaseModel):
    """Contributing factors of a forensic verdict."""
    metadata: MetadataCheck
    compression_artifacts: CompressionCheck
    typography: TypographyCheck
    pixel_pattern: PixelPatternCheck


class ForensicResult(BaseModel):
    """Authenticity verdict from the document-forensics service."""
    is_forged: bool
    score: int = Field(ge=0, le=100, description="Authenticity confidence, 0-100")
    factors: ForensicFactors
    reason: str = ""


class DocumentRequirement(BaseModel):
    """One row of an entity's evidence checklist."""
    id: str = Field(description="Stable key derived from source rule and document name")
    name: str
    description: str = ""
    category: DocumentCategory = DocumentCategory.STANDARD
    trigger_reason: str = Field(default="", description="Human-readable provenance of the requirement")
    uploaded: bool = False
    verification_status: VerificationStatus = VerificationStatus.PENDING
    forensic_analysis: Optional[ForensicResult] = None

    @model_validator(mode="after")
    def _not_uploaded_means_pending(self):
        if not self.uploaded and self.verification_status != VerificationStatus.PENDING:
            raise ValueError(
                f"Document '{self.name}' is not uploaded but has status "
                f"{self.verification_status.value}"
            )
        return self


# =============================================================================
# Risk Intake & Screening
# =============================================================================

class RiskFactor(BaseModel):
    """Individual risk factor reported by the risk-analysis service."""
    category: str
    description: str
    score: int = Field(default=0, ge=0, le=100)
    severity: RiskLevel = RiskLevel.LOW


class ScreeningHit(BaseModel):
    """One candidate match against an external list."""
    id: str
    name: str = Field(description="Name found in the external list")
    type: ScreeningHitType
    score: int = Field(default=0, ge=0, le=100, description="Fuzzy match confidence")
    description: str = ""
    list_source: Optional[str] = Field(default=None, description="e.g. OFAC, WorldCheck")
    status: MatchStatus = MatchStatus.POTENTIAL


class ScreeningResult(BaseModel):
    """Sanctions / PEP / adverse-media screening outcome."""
    sanctions_hit: bool = False
    pep_status: bool = False
    adverse_media_found: bool = False
    summary: str = ""
    hits: list[ScreeningHit] = Field(default_factory=list)


class RiskAnalysisResult(BaseModel):
    """Response contract of the risk-analysis service."""
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    screening_result: ScreeningResult = Field(default_factory=ScreeningResult)
    enriched_summary: str = ""


class FinalRiskDetermination(BaseModel):
    """Risk outcome after screening-hit disposition."""
    risk_level: RiskLevel
    risk_score: int
    status_hint: str = ""
    is_clean: bool = False
    matched_count: int = 0
    unresolved_count: int = 0
    disposition_skipped: bool = Field(default=False, description="True when the service returned no hits")


class GateResult(BaseModel):
    """Outcome of a progression guard (documentation, screening, intake)."""
    allowed: bool
    reason: str = ""
    blocking: list[str] = Field(default_factory=list)


# =============================================================================
# Entity Profile
# =============================================================================

class TaxInfo(BaseModel):
    """Tax compliance identifiers; which are required depends on the region."""
    tin: Optional[str] = None
    fatca_status: Optional[str] = None
    crs_number: Optional[str] = None
    giin: Optional[str] = None
    vat_number: Optional[str] = None


class EntityProfile(BaseModel):
    """Aggregate record for one applicant or client."""
    id: str
    type: EntityType
    name: str
    attributes: dict[str, str] = Field(default_factory=dict)
    region: Optional[Region] = None
    tax_info: Optional[TaxInfo] = None
    documents: list[DocumentRequirement] = Field(default_factory=list)
    active_policies: list[str] = Field(default_factory=list)

    # Risk
    risk_score: int = Field(default=0, ge=0, le=100)
    risk_level: RiskLevel = RiskLevel.LOW
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    screening_result: Optional[ScreeningResult] = None
    enriched_data: Optional[str] = None

    # Lifecycle
    status: ApplicationStatus = ApplicationStatus.DRAFT
    approved_by: Optional[ApprovedBy] = None
    waiver_reason: Optional[str] = None
    offboarding_reason: Optional[str] = None
    review_trigger: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now)
    last_review_date: Optional[datetime] = None
    next_review_date: Optional[datetime] = None

    @field_validator("documents")
    @classmethod
    def _unique_document_names(cls, docs: list[DocumentRequirement]) -> list[DocumentRequirement]:
        names = [d.name for d in docs]
        if len(names) != len(set(names)):
            raise ValueError("Document names must be unique within an entity")
        return docs


class EntitySearchResult(BaseModel):
    """Response contract of the natural-language search service."""
    matched_ids: list[str] = Field(default_factory=list)
    reason: str = ""
