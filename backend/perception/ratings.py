from __future__ import annotations

from typing import Dict, Optional
import logging
import sqlite3

from backend.app.db import transaction
from backend.perception.identity import ClientInfo, record_useragent

logger = logging.getLogger(__name__)


def create_new_rating(
    conn: sqlite3.Connection,
    client: ClientInfo,
    session_id: int,
    image_id: int,
    category_id: int,
    rating: int,
) -> str:
    """
    Store one rating and make it the session's undoable rating.
    Returns the server-assigned timestamp of the new row.
    """
    try:
        with transaction(conn):
            ua_id = record_useragent(conn, client.user_agent)
            cur = conn.execute(
                """
                INSERT INTO rating(session_id, image_id, category_id, rating, useragent_id, ipaddr)
                VALUES(?,?,?,?,?,?)
                """,
                (session_id, image_id, category_id, rating, ua_id, client.ip),
            )
            rating_id = int(cur.lastrowid)
            ts = conn.execute(
                "SELECT ts FROM rating WHERE rating_id = ?",
                (rating_id,),
            ).fetchone()["ts"]

            # only the latest rating per session is kept for undo
            conn.execute(
                """
                INSERT INTO undoable(session_id, rating_id) VALUES(?,?)
                ON CONFLICT(session_id) DO UPDATE SET rating_id = excluded.rating_id
                """,
                (session_id, rating_id),
            )
    except sqlite3.Error as e:
        logger.warning(
            f"create_new_rating({session_id}, {image_id}, {category_id}, {rating}) failed: {e}"
        )
        raise

    logger.info(
        f"create_new_rating({client.ip}, {session_id}, {image_id}, {category_id}, {rating}) "
        f"=> rating_id={rating_id} ts={ts}"
    )
    return str(ts)


def undo_last_rating(conn: sqlite3.Connection, session_id: int) -> Optional[str]:
    """
    Delete the session's undoable rating and return its timestamp.
    None means there was nothing to undo.
    """
    with transaction(conn):
        row = conn.execute(
            """
            SELECT u.rating_id, r.ts
            FROM undoable u
            JOIN rating r ON r.rating_id = u.rating_id AND r.session_id = u.session_id
            WHERE u.session_id = ?
            """,
            (session_id,),
        ).fetchone()
        if row is None:
            return None

        rating_id = int(row["rating_id"])
        conn.execute("DELETE FROM undoable WHERE session_id = ?", (session_id,))
        conn.execute(
            "DELETE FROM rating WHERE session_id = ? AND rating_id = ?",
            (session_id, rating_id),
        )

    logger.info(f"undo_last_rating({session_id}) => removed rating_id={rating_id}")
    return str(row["ts"])


def count_ratings(conn: sqlite3.Connection, session_id: int) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS c FROM rating WHERE session_id = ?",
        (session_id,),
    ).fetchone()
    return int(row["c"]) if row else 0


def count_ratings_by_category(conn: sqlite3.Connection, session_id: int) -> Dict[int, int]:
    # categories without ratings are absent, not zero
    rows = conn.execute(
        """
        SELECT category_id, COUNT(*) AS c
        FROM rating
        WHERE session_id = ?
        GROUP BY category_id
        """,
        (session_id,),
    ).fetchall()
    return {int(r["category_id"]): int(r["c"]) for r in rows}
