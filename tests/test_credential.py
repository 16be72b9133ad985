import json
from datetime import date, datetime
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.core.credential import (
    compute_valid_not_before,
    decode_credential,
    encode_credential,
)
from app.core.exceptions import MalformedCredential, TamperedCredential
from app.core.qr import render_qr_data_url

SECRET = "unit-test-secret"


def _token(secret: str = SECRET) -> str:
    leave = SimpleNamespace(id=uuid4(), from_date=date(2026, 3, 13), to_date=date(2026, 3, 15))
    student = SimpleNamespace(id=uuid4(), college_id="CS2024001", student_name="Asha Kumar")
    return encode_credential(leave, student, compute_valid_not_before(leave.from_date, 2), secret)


def test_valid_not_before_is_lead_hours_before_first_day() -> None:
    assert compute_valid_not_before(date(2026, 3, 13), 2) == datetime(2026, 3, 12, 22, 0)


def test_encode_uses_camel_case_claims() -> None:
    claims = json.loads(_token())
    assert set(claims) == {
        "applicationId",
        "studentId",
        "studentExternalId",
        "studentDisplayName",
        "fromDate",
        "toDate",
        "validNotBefore",
        "integrityTag",
    }
    assert claims["fromDate"] == "2026-03-13"
    assert claims["validNotBefore"] == "2026-03-12T22:00:00"


def test_decode_round_trip() -> None:
    token = _token()
    claims = decode_credential(token, SECRET)
    assert claims.student_external_id == "CS2024001"
    assert claims.to_date == "2026-03-15"


def test_flipping_a_from_date_character_is_tampering() -> None:
    claims = json.loads(_token())
    claims["fromDate"] = "2026-03-14"
    with pytest.raises(TamperedCredential):
        decode_credential(json.dumps(claims), SECRET)


def test_swapping_student_id_is_tampering() -> None:
    claims = json.loads(_token())
    claims["studentId"] = str(uuid4())
    with pytest.raises(TamperedCredential):
        decode_credential(json.dumps(claims), SECRET)


def test_wrong_key_is_tampering() -> None:
    with pytest.raises(TamperedCredential):
        decode_credential(_token(secret="another-key"), SECRET)


@pytest.mark.parametrize("raw", ["", "   ", "not json", "[1, 2]", '{"applicationId": "x"}'])
def test_unparseable_tokens_are_malformed(raw: str) -> None:
    with pytest.raises(MalformedCredential) as exc:
        decode_credential(raw, SECRET)
    assert exc.value.message == "Invalid QR code format"


def test_render_qr_data_url() -> None:
    url = render_qr_data_url(_token(), box_size=4)
    assert url.startswith("data:image/png;base64,")
