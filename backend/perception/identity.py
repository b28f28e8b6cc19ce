from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import hashlib
import logging
import sqlite3
import uuid

from backend.app.db import transaction

logger = logging.getLogger(__name__)


@dataclass
class ClientInfo:
    """Who is on the other end of the request (diagnostics only)."""
    ip: Optional[str]
    user_agent: str = ""


@dataclass
class IntakeFields:
    age: int
    consent: bool
    monthly_gross_income: Optional[int] = None
    education: Optional[str] = None
    gender: Optional[str] = None
    country: Optional[str] = None
    postcode: Optional[str] = None


def useragent_id(useragent_str: str) -> str:
    # stable key: md5 of the raw string rendered as a UUID
    return str(uuid.UUID(bytes=hashlib.md5(useragent_str.encode("utf-8")).digest()))


def record_useragent(conn: sqlite3.Connection, useragent_str: str) -> str:
    """
    Insert the user-agent string once; later calls with the same string are
    no-ops. Runs inside the caller's transaction.
    """
    ua_id = useragent_id(useragent_str)
    conn.execute(
        "INSERT OR IGNORE INTO useragent(useragent_id, useragent_str) VALUES(?,?)",
        (ua_id, useragent_str),
    )
    return ua_id


def create_new_person(conn: sqlite3.Connection, intake: IntakeFields) -> int:
    """Insert the survey answers and the person they belong to, atomically."""
    with transaction(conn):
        cur = conn.execute(
            """
            INSERT INTO survey(age, monthly_gross_income, education, gender, country, postalcode, consent)
            VALUES(?,?,?,?,?,?,?)
            """,
            (
                intake.age,
                intake.monthly_gross_income,
                intake.education,
                intake.gender,
                intake.country,
                intake.postcode,
                1 if intake.consent else 0,
            ),
        )
        survey_id = int(cur.lastrowid)

        cur = conn.execute("INSERT INTO person(survey_id) VALUES(?)", (survey_id,))
        person_id = int(cur.lastrowid)

    logger.info(f"create_new_person => person_id={person_id} survey_id={survey_id}")
    return person_id
