import pytest
from starlette.datastructures import QueryParams

from conftest import SECRET_KEY
from fsbucket.services.authorizer import Authorized, Rejected, RejectionReason, authorize
from fsbucket.services.signature import sign

NOW = 1_700_000_000
EXPIRES = str(NOW + 60)


def valid_query(method="GET", path="/reports/jan.txt"):
    return {"signature": sign(method, path, EXPIRES, SECRET_KEY), "expires": EXPIRES}


def test_authorizes_valid_request():
    outcome = authorize("GET", "/reports/jan.txt", valid_query(), SECRET_KEY, now=NOW)
    assert outcome == Authorized(path="/reports/jan.txt")


def test_accepts_starlette_query_params():
    query = QueryParams(valid_query("PUT"))
    outcome = authorize("PUT", "/reports/jan.txt", query, SECRET_KEY, now=NOW)
    assert isinstance(outcome, Authorized)


def test_rejects_extra_query_parameter():
    query = {**valid_query(), "download": "1"}
    outcome = authorize("GET", "/reports/jan.txt", query, SECRET_KEY, now=NOW)
    assert outcome == Rejected(RejectionReason.INVALID_QUERY)


def test_rejects_repeated_query_parameter():
    query = valid_query()
    pairs = [("signature", query["signature"]), ("signature", "0" * 64), ("expires", EXPIRES)]

    assert authorize("GET", "/reports/jan.txt", pairs, SECRET_KEY, now=NOW) == Rejected(RejectionReason.INVALID_QUERY)
    assert authorize("GET", "/reports/jan.txt", QueryParams(pairs), SECRET_KEY, now=NOW) == Rejected(
        RejectionReason.INVALID_QUERY
    )


@pytest.mark.parametrize("query,reason", [
    ({}, RejectionReason.MISSING_SIGNATURE),
    ({"expires": EXPIRES}, RejectionReason.MISSING_SIGNATURE),
    ({"signature": "", "expires": EXPIRES}, RejectionReason.MISSING_SIGNATURE),
    ({"signature": "a" * 64}, RejectionReason.MISSING_EXPIRES),
    ({"signature": "a" * 64, "expires": ""}, RejectionReason.MISSING_EXPIRES),
])
def test_rejects_missing_parameters(query, reason):
    outcome = authorize("GET", "/reports/jan.txt", query, SECRET_KEY, now=NOW)
    assert outcome == Rejected(reason)


def test_rejects_unsafe_path_before_checking_signature():
    path = "/a/../b"
    query = {"signature": sign("GET", path, EXPIRES, SECRET_KEY), "expires": EXPIRES}

    outcome = authorize("GET", path, query, SECRET_KEY, now=NOW)
    assert outcome == Rejected(RejectionReason.INVALID_PATH)


def test_rejects_invalid_signature():
    outcome = authorize("GET", "/reports/feb.txt", valid_query(), SECRET_KEY, now=NOW)
    assert outcome == Rejected(RejectionReason.INVALID_SIGNATURE)


def test_rejects_expired_signature():
    outcome = authorize("GET", "/reports/jan.txt", valid_query(), SECRET_KEY, now=NOW + 61)
    assert outcome == Rejected(RejectionReason.INVALID_SIGNATURE)


def test_rejects_signature_for_other_method():
    outcome = authorize("PUT", "/reports/jan.txt", valid_query("GET"), SECRET_KEY, now=NOW)
    assert outcome == Rejected(RejectionReason.INVALID_SIGNATURE)


def test_path_and_signature_failures_look_the_same():
    assert Rejected(RejectionReason.INVALID_PATH).message == Rejected(RejectionReason.INVALID_SIGNATURE).message


def test_rejection_is_logged(caplog):
    with caplog.at_level("INFO", logger="fsbucket"):
        authorize("GET", "/reports/feb.txt", valid_query(), SECRET_KEY, now=NOW)
    assert "invalid_signature" in caplog.text
