from __future__ import annotations

from typing import Any, Dict, List, Optional
import sqlite3

DEFAULT_LANGUAGE = "en"


def fetch_next_image(conn: sqlite3.Connection, session_id: int) -> Optional[Dict[str, Any]]:
    """A random enabled image this session has not rated yet, or None."""
    row = conn.execute(
        """
        SELECT cityname, url, image_id
        FROM image
        WHERE enabled = 1
          AND image_id NOT IN (SELECT image_id FROM rating WHERE session_id = ?)
        ORDER BY RANDOM()
        LIMIT 1
        """,
        (session_id,),
    ).fetchone()
    return dict(row) if row else None


def get_categories(conn: sqlite3.Connection, langabbr: str = DEFAULT_LANGUAGE) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT t1.v AS shortname, t2.v AS description, c.category_id AS category_id
        FROM category c
        JOIN translation t1 ON t1.string_id = c.shortname_sid AND t1.langabbr = ?
        JOIN translation t2 ON t2.string_id = c.description_sid AND t2.langabbr = ?
        ORDER BY c.category_id
        """,
        (langabbr, langabbr),
    ).fetchall()
    return [dict(r) for r in rows]
