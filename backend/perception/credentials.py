"""
Cookie hashes: the opaque credential that ties a browser to a person.

A cookie hash is HMAC-SHA224(secret, "<person_id>_<issued_at>"). The raw
28 byte digest is stored; clients see its base64 form, which is always
40 characters long.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
import base64
import binascii
import hashlib
import hmac
import logging
import sqlite3

from backend.app.config import settings
from backend.app.db import transaction
from backend.app.exceptions import AuthenticationError
from backend.perception.identity import ClientInfo, record_useragent

logger = logging.getLogger(__name__)

DIGEST = hashlib.sha224
DIGEST_SIZE = DIGEST().digest_size
COOKIE_HASH_LENGTH = 40  # len(base64(28 bytes))


def derive_cookie_hash(person_id: int, issued_at: str, secret: str) -> bytes:
    msg = f"{person_id}_{issued_at}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, DIGEST).digest()


def encode_cookie_hash(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def decode_cookie_hash(cookie_hash: Optional[str]) -> Optional[bytes]:
    """Return the raw digest, or None for anything that can't be one."""
    if not cookie_hash or len(cookie_hash) != COOKIE_HASH_LENGTH:
        return None
    try:
        raw = base64.b64decode(cookie_hash, validate=True)
    except (binascii.Error, ValueError):
        return None
    if len(raw) != DIGEST_SIZE:
        return None
    return raw


def get_cookie_hash(
    conn: sqlite3.Connection,
    client: ClientInfo,
    person_id: int,
    secret: Optional[str] = None,
    ttl_days: Optional[int] = None,
) -> str:
    """
    Return a still-valid cookie hash for the person, issuing a new one only
    when none exists.
    """
    secret = secret or settings.credential_secret
    if ttl_days is None:
        ttl_days = settings.cookie_ttl_days

    with transaction(conn):
        row = conn.execute(
            """
            SELECT cookie_hash
            FROM cookie
            WHERE person_id = ?
              AND (expiration IS NULL OR expiration > datetime('now'))
            LIMIT 1
            """,
            (person_id,),
        ).fetchone()
        if row is not None:
            return encode_cookie_hash(bytes(row["cookie_hash"]))

        now = datetime.now(timezone.utc)
        raw = derive_cookie_hash(person_id, now.isoformat(), secret)

        expiration = None
        if ttl_days:
            # same text format as sqlite's datetime('now') so they compare
            expiration = (now + timedelta(days=ttl_days)).strftime("%Y-%m-%d %H:%M:%S")

        ua_id = record_useragent(conn, client.user_agent)
        conn.execute(
            """
            INSERT INTO cookie(cookie_hash, person_id, useragent_id, ipaddr, expiration)
            VALUES(?,?,?,?,?)
            """,
            (raw, person_id, ua_id, client.ip, expiration),
        )

    logger.info(f"get_cookie_hash({person_id}) => issued new cookie hash (ip={client.ip})")
    return encode_cookie_hash(raw)


def check_cookie_hash(conn: sqlite3.Connection, session_id: int, cookie_hash: Optional[str]) -> bool:
    """True iff the session's owner also owns this cookie hash."""
    raw = decode_cookie_hash(cookie_hash)
    if raw is None:
        return False

    row = conn.execute(
        """
        SELECT s.person_id
        FROM session s
        JOIN cookie c ON c.person_id = s.person_id
        WHERE s.session_id = ? AND c.cookie_hash = ?
        """,
        (session_id, raw),
    ).fetchone()
    return row is not None


def require_valid_credential(conn: sqlite3.Connection, session_id: int, cookie_hash: Optional[str]) -> None:
    if not check_cookie_hash(conn, session_id, cookie_hash):
        logger.info(f"rejected credential for session_id={session_id}")
        raise AuthenticationError()


def get_person_from_session(
    conn: sqlite3.Connection,
    session_id: Optional[int],
    cookie_hash: Optional[str] = None,
) -> Optional[int]:
    """
    Resolve a person by session id, falling back to the cookie hash.
    Used to recover a session, not to authenticate.
    """
    if session_id:
        row = conn.execute(
            "SELECT person_id FROM session WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        if row is not None:
            person_id = int(row["person_id"])
            logger.debug(f"get_person_from_session({session_id}) => {person_id}")
            return person_id

    raw = decode_cookie_hash(cookie_hash)
    if raw is not None:
        row = conn.execute(
            "SELECT person_id FROM cookie WHERE cookie_hash = ?",
            (raw,),
        ).fetchone()
        if row is not None:
            person_id = int(row["person_id"])
            logger.debug(f"get_person_from_session(cookie) => {person_id}")
            return person_id

    logger.debug(f"get_person_from_session({session_id}) => None")
    return None
