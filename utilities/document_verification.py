"""
Document verification tracker.

Per-document state machine over an entity's checklist:

    Pending --begin--> Scanning --complete--> Verified | Flagged
    Verified | Flagged --remove--> Pending

Scanning is the explicit in-flight state while the forensics service is
working; any conflicting action on that document raises DocumentStateError.
"""

from typing import Optional

from agents.document_forensics import fallback_forensic_result
from exceptions import DocumentStateError
from logger import get_logger
from models import DocumentRequirement, ForensicResult, GateResult, VerificationStatus

logger = get_logger(__name__)


def default_suspicious_hint(document_name: str) -> bool:
    """Deterministic forgery hint used when the caller supplies none."""
    return "fake" in document_name.lower()


class DocumentTracker:
    """Mutable view over a checklist; `documents` always holds the latest rows."""

    def __init__(self, documents: list[DocumentRequirement]):
        self.documents = list(documents)

    def _index(self, doc_id: str) -> int:
        for i, doc in enumerate(self.documents):
            if doc.id == doc_id:
                return i
        raise KeyError(doc_id)

    def get(self, doc_id: str) -> DocumentRequirement:
        return self.documents[self._index(doc_id)]

    def _replace(self, doc_id: str, **update) -> DocumentRequirement:
        i = self._index(doc_id)
        self.documents[i] = self.documents[i].model_copy(update=update)
        return self.documents[i]

    def begin_verification(self, doc_id: str) -> DocumentRequirement:
        """Mark a document uploaded and awaiting forensics."""
        doc = self.get(doc_id)
        if doc.verification_status != VerificationStatus.PENDING:
            raise DocumentStateError(doc_id, doc.verification_status, "begin verification of")
        logger.info(f"Scanning document '{doc.name}'")
        return self._replace(
            doc_id,
            uploaded=True,
            verification_status=VerificationStatus.SCANNING,
            forensic_analysis=None,
        )

    def complete_verification(self, doc_id: str, result: ForensicResult) -> DocumentRequirement:
        """Record the forensic verdict: forged documents are Flagged, never dropped."""
        doc = self.get(doc_id)
        if doc.verification_status != VerificationStatus.SCANNING:
            raise DocumentStateError(doc_id, doc.verification_status, "complete verification of")

        status = VerificationStatus.FLAGGED if result.is_forged else VerificationStatus.VERIFIED
        if result.is_forged:
            logger.warning(f"Document '{doc.name}' flagged (score {result.score}): {result.reason}")
        else:
            logger.info(f"Document '{doc.name}' verified (score {result.score})")
        return self._replace(doc_id, verification_status=status, forensic_analysis=result)

    def remove(self, doc_id: str) -> DocumentRequirement:
        """Discard an upload so the document can be re-attempted."""
        doc = self.get(doc_id)
        if doc.verification_status == VerificationStatus.PENDING:
            return doc
        if doc.verification_status == VerificationStatus.SCANNING:
            raise DocumentStateError(doc_id, doc.verification_status, "remove")
        logger.info(f"Removed upload for '{doc.name}'")
        return self._replace(
            doc_id,
            uploaded=False,
            verification_status=VerificationStatus.PENDING,
            forensic_analysis=None,
        )

    async def verify(self, doc_id: str, forensics, suspicious: Optional[bool] = None) -> DocumentRequirement:
        """
        Upload and verify one document end to end.

        Args:
            doc_id: Checklist row to verify
            forensics: Collaborator exposing `async verify(document_name, suspicious)`
            suspicious: Forgery hint; defaults to default_suspicious_hint(name).
                Also keys the fallback verdict when the service raises.
        """
        doc = self.begin_verification(doc_id)
        hint = default_suspicious_hint(doc.name) if suspicious is None else suspicious
        try:
            result = await forensics.verify(doc.name, hint)
        except Exception as e:
            logger.warning(f"Forensics failed for '{doc.name}', using fallback: {e}")
            result = fallback_forensic_result(hint)
        return self.complete_verification(doc_id, result)


def check_documentation_gate(documents: list[DocumentRequirement]) -> GateResult:
    """Every required document must be uploaded and Verified."""
    blocking = [
        d.name for d in documents
        if not (d.uploaded and d.verification_status == VerificationStatus.VERIFIED)
    ]
    if blocking:
        return GateResult(
            allowed=False,
            reason=f"{len(blocking)} document(s) not verified: {', '.join(blocking)}",
            blocking=blocking,
        )
    return GateResult(allowed=True)
