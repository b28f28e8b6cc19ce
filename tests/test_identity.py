"""Tests for the identity store (survey, person, useragent)"""

import sqlite3

import pytest

from backend.perception.identity import (
    IntakeFields,
    create_new_person,
    record_useragent,
    useragent_id,
)


class TestCreateNewPerson:
    """Test person creation from an intake survey"""

    def test_creates_linked_survey_and_person(self, conn, intake):
        person_id = create_new_person(conn, intake)

        row = conn.execute(
            """
            SELECT s.age, s.consent, s.country, s.postalcode
            FROM person p JOIN survey s ON s.survey_id = p.survey_id
            WHERE p.person_id = ?
            """,
            (person_id,),
        ).fetchone()

        assert row["age"] == 30
        assert row["consent"] == 1
        assert row["country"] == "NL"
        assert row["postalcode"] == "3584"

    def test_each_intake_gets_its_own_person(self, conn, intake):
        first = create_new_person(conn, intake)
        second = create_new_person(conn, intake)
        assert first != second

    def test_storage_error_leaves_no_partial_rows(self, conn):
        """A rejected survey row must not leave anything behind"""
        with pytest.raises(sqlite3.IntegrityError):
            create_new_person(conn, IntakeFields(age=-1, consent=True))

        assert conn.execute("SELECT COUNT(*) AS c FROM survey").fetchone()["c"] == 0
        assert conn.execute("SELECT COUNT(*) AS c FROM person").fetchone()["c"] == 0
        assert not conn.in_transaction


class TestUserAgent:
    """Test user-agent deduplication"""

    def test_id_is_stable_uuid(self):
        assert useragent_id("curl/8.0") == useragent_id("curl/8.0")
        assert useragent_id("curl/8.0") != useragent_id("curl/8.1")
        assert len(useragent_id("")) == 36

    def test_insert_is_idempotent(self, conn):
        a = record_useragent(conn, "Mozilla/5.0")
        b = record_useragent(conn, "Mozilla/5.0")

        assert a == b
        count = conn.execute("SELECT COUNT(*) AS c FROM useragent").fetchone()["c"]
        assert count == 1
