import logging
import sqlite3

from backend.app.db import transaction

logger = logging.getLogger(__name__)


def create_or_retrieve_session(conn: sqlite3.Connection, person_id: int) -> int:
    """
    Return the person's most recently active session, creating one if the
    person has none yet. Lookup and insert share one transaction.
    """
    with transaction(conn):
        row = conn.execute(
            """
            SELECT session_id
            FROM session
            WHERE person_id = ?
            ORDER BY session_active DESC, session_id DESC
            LIMIT 1
            """,
            (person_id,),
        ).fetchone()

        if row is not None:
            return int(row["session_id"])

        cur = conn.execute("INSERT INTO session(person_id) VALUES(?)", (person_id,))
        session_id = int(cur.lastrowid)

    logger.info(f"create_or_retrieve_session({person_id}) => new session_id={session_id}")
    return session_id
