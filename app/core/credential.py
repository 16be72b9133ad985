"""
Gate credential codec.

A credential is the JSON claim set shown as a QR code on the student's phone:

    {"applicationId", "studentId", "studentExternalId", "studentDisplayName",
     "fromDate", "toDate", "validNotBefore", "integrityTag"}

integrityTag is HMAC-SHA256 over the binding fields (applicationId, studentId,
fromDate) serialized as compact sorted-key JSON. Only those fields are bound; the
gate reads dates and status from the leave record, never from the claims.
Claim values stay strings so a token is authenticated before anything in it is parsed.
"""

import hashlib
import hmac
import json
from datetime import date, datetime, time, timedelta

from pydantic import BaseModel, Field, ValidationError

from app.core.exceptions import MalformedCredential, TamperedCredential


class CredentialClaims(BaseModel):
    application_id: str = Field(..., alias="applicationId")
    student_id: str = Field(..., alias="studentId")
    student_external_id: str = Field(..., alias="studentExternalId")
    student_display_name: str = Field(..., alias="studentDisplayName")
    from_date: str = Field(..., alias="fromDate")
    to_date: str = Field(..., alias="toDate")
    valid_not_before: str = Field(..., alias="validNotBefore")
    integrity_tag: str = Field(..., alias="integrityTag")

    class Config:
        populate_by_name = True


def _canonical_binding(application_id: str, student_id: str, from_date: str) -> bytes:
    payload = {"applicationId": application_id, "studentId": student_id, "fromDate": from_date}
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def compute_integrity_tag(application_id: str, student_id: str, from_date: str, secret_key: str) -> str:
    return hmac.new(
        secret_key.encode("utf-8"),
        _canonical_binding(application_id, student_id, from_date),
        hashlib.sha256,
    ).hexdigest()


def compute_valid_not_before(from_date: date, lead_hours: int) -> datetime:
    """Credential opens lead_hours before midnight starting from_date."""
    return datetime.combine(from_date, time.min) - timedelta(hours=lead_hours)


def encode_credential(leave, student, valid_not_before: datetime, secret_key: str) -> str:
    """Build and sign the claim set for an approved leave. Returns the token text."""
    application_id = str(leave.id)
    student_id = str(student.id)
    from_date = leave.from_date.isoformat()
    claims = CredentialClaims(
        application_id=application_id,
        student_id=student_id,
        student_external_id=student.college_id,
        student_display_name=student.student_name,
        from_date=from_date,
        to_date=leave.to_date.isoformat(),
        valid_not_before=valid_not_before.isoformat(timespec="seconds"),
        integrity_tag=compute_integrity_tag(application_id, student_id, from_date, secret_key),
    )
    return claims.model_dump_json(by_alias=True)


def decode_credential(token: str, secret_key: str) -> CredentialClaims:
    """
    Parse and authenticate a presented token.
    Raises MalformedCredential if unparseable, TamperedCredential if the tag does not match.
    Temporal and status checks are the gate's job.
    """
    if not isinstance(token, str) or not token.strip():
        raise MalformedCredential()
    try:
        claims = CredentialClaims.model_validate_json(token)
    except ValidationError:
        raise MalformedCredential()

    expected = compute_integrity_tag(claims.application_id, claims.student_id, claims.from_date, secret_key)
    if not hmac.compare_digest(expected.encode("utf-8"), claims.integrity_tag.encode("utf-8")):
        raise TamperedCredential()
    return claims
