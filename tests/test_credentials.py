"""Tests for cookie hash issuance and verification"""

import base64

import pytest

from backend.app.exceptions import AuthenticationError
from backend.perception.credentials import (
    COOKIE_HASH_LENGTH,
    check_cookie_hash,
    decode_cookie_hash,
    derive_cookie_hash,
    encode_cookie_hash,
    get_cookie_hash,
    get_person_from_session,
    require_valid_credential,
)
from backend.perception.identity import create_new_person
from backend.perception.sessions import create_or_retrieve_session


@pytest.fixture
def person(conn, intake):
    person_id = create_new_person(conn, intake)
    session_id = create_or_retrieve_session(conn, person_id)
    return person_id, session_id


class TestDerivation:

    def test_encoded_length_is_fixed(self):
        raw = derive_cookie_hash(1, "2024-01-01T00:00:00+00:00", "secret")
        assert len(encode_cookie_hash(raw)) == COOKIE_HASH_LENGTH

    def test_depends_on_key_and_timestamp(self):
        a = derive_cookie_hash(1, "2024-01-01T00:00:00+00:00", "secret")
        assert a != derive_cookie_hash(1, "2024-01-01T00:00:01+00:00", "secret")
        assert a != derive_cookie_hash(1, "2024-01-01T00:00:00+00:00", "other")
        assert a != derive_cookie_hash(2, "2024-01-01T00:00:00+00:00", "secret")

    def test_decode_rejects_malformed_values(self):
        raw = derive_cookie_hash(1, "t", "secret")
        good = encode_cookie_hash(raw)

        assert decode_cookie_hash(good) == raw
        assert decode_cookie_hash(None) is None
        assert decode_cookie_hash("") is None
        assert decode_cookie_hash(good[:-1]) is None
        assert decode_cookie_hash("!" * COOKIE_HASH_LENGTH) is None
        # valid base64 of the right length but the wrong digest size
        assert decode_cookie_hash(base64.b64encode(b"x" * 30).decode()) is None


class TestGetCookieHash:

    def test_issues_and_stores_credential(self, conn, client_info, person):
        person_id, _ = person
        cookie_hash = get_cookie_hash(conn, client_info, person_id)

        assert len(cookie_hash) == COOKIE_HASH_LENGTH
        row = conn.execute(
            "SELECT person_id, ipaddr, useragent_id, expiration FROM cookie WHERE cookie_hash = ?",
            (decode_cookie_hash(cookie_hash),),
        ).fetchone()
        assert row["person_id"] == person_id
        assert row["ipaddr"] == client_info.ip
        assert row["useragent_id"] is not None
        assert row["expiration"] is None

    def test_reuses_valid_credential(self, conn, client_info, person):
        person_id, _ = person

        first = get_cookie_hash(conn, client_info, person_id)
        second = get_cookie_hash(conn, client_info, person_id)

        assert first == second
        count = conn.execute("SELECT COUNT(*) AS c FROM cookie").fetchone()["c"]
        assert count == 1

    def test_expired_credential_is_replaced(self, conn, client_info, person):
        person_id, _ = person
        old = get_cookie_hash(conn, client_info, person_id)
        conn.execute("UPDATE cookie SET expiration = '2000-01-01 00:00:00'")

        new = get_cookie_hash(conn, client_info, person_id)

        assert new != old
        count = conn.execute("SELECT COUNT(*) AS c FROM cookie WHERE person_id = ?", (person_id,)).fetchone()["c"]
        assert count == 2

    def test_ttl_sets_future_expiration(self, conn, client_info, person):
        person_id, _ = person
        cookie_hash = get_cookie_hash(conn, client_info, person_id, ttl_days=30)

        row = conn.execute(
            "SELECT expiration > datetime('now') AS valid FROM cookie WHERE cookie_hash = ?",
            (decode_cookie_hash(cookie_hash),),
        ).fetchone()
        assert row["valid"] == 1
        assert get_cookie_hash(conn, client_info, person_id) == cookie_hash


class TestCheckCookieHash:

    def test_matching_pair_is_accepted(self, conn, client_info, person):
        person_id, session_id = person
        cookie_hash = get_cookie_hash(conn, client_info, person_id)

        assert check_cookie_hash(conn, session_id, cookie_hash) is True
        require_valid_credential(conn, session_id, cookie_hash)

    def test_other_persons_credential_is_rejected(self, conn, client_info, intake, person):
        _, session_id = person
        other = create_new_person(conn, intake)
        other_hash = get_cookie_hash(conn, client_info, other)

        assert check_cookie_hash(conn, session_id, other_hash) is False
        with pytest.raises(AuthenticationError) as exc_info:
            require_valid_credential(conn, session_id, other_hash)
        assert exc_info.value.message == "invalid authentication or session_id not present"

    def test_tampered_or_unknown_values_are_rejected(self, conn, client_info, person):
        person_id, session_id = person
        cookie_hash = get_cookie_hash(conn, client_info, person_id)

        assert check_cookie_hash(conn, session_id, cookie_hash[:-2]) is False
        assert check_cookie_hash(conn, session_id, cookie_hash + "AA") is False
        assert check_cookie_hash(conn, session_id, "A" * COOKIE_HASH_LENGTH) is False
        assert check_cookie_hash(conn, session_id + 1000, cookie_hash) is False
        assert check_cookie_hash(conn, session_id, None) is False

    def test_expired_credential_still_authenticates(self, conn, client_info, person):
        """Expiry only stops reissuing a hash; verification ignores it"""
        person_id, session_id = person
        cookie_hash = get_cookie_hash(conn, client_info, person_id)
        conn.execute("UPDATE cookie SET expiration = '2000-01-01 00:00:00'")

        assert check_cookie_hash(conn, session_id, cookie_hash) is True
        assert get_person_from_session(conn, None, cookie_hash) == person_id


class TestGetPersonFromSession:

    def test_resolves_by_session_id(self, conn, person):
        person_id, session_id = person
        assert get_person_from_session(conn, session_id) == person_id

    def test_falls_back_to_cookie_hash(self, conn, client_info, person):
        person_id, _ = person
        cookie_hash = get_cookie_hash(conn, client_info, person_id)

        assert get_person_from_session(conn, None, cookie_hash) == person_id
        assert get_person_from_session(conn, 99999, cookie_hash) == person_id

    def test_unknown_returns_none(self, conn):
        assert get_person_from_session(conn, None, None) is None
        assert get_person_from_session(conn, 99999, "A" * COOKIE_HASH_LENGTH) is None
