from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List
import sqlite3


@dataclass
class ExtremeRating:
    url: str
    rating: int
    category_id: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_category_averages(conn: sqlite3.Connection, session_id: int) -> Dict[int, float]:
    rows = conn.execute(
        """
        SELECT category_id, AVG(rating) AS average
        FROM rating
        WHERE session_id = ?
        GROUP BY category_id
        """,
        (session_id,),
    ).fetchall()
    return {int(r["category_id"]): float(r["average"]) for r in rows}


def _extremes(conn: sqlite3.Connection, session_id: int, direction: str) -> List[ExtremeRating]:
    # direction comes from get_minmax_images only, never from a request
    rows = conn.execute(
        f"""
        SELECT url, rating, category_id
        FROM (
          SELECT
            i.url AS url,
            r.rating AS rating,
            r.category_id AS category_id,
            ROW_NUMBER() OVER (
              PARTITION BY r.category_id
              ORDER BY r.rating {direction}, r.rating_id ASC
            ) AS rn
          FROM rating r
          JOIN image i ON i.image_id = r.image_id
          WHERE r.session_id = ?
        ) q
        WHERE rn = 1
        ORDER BY category_id
        """,
        (session_id,),
    ).fetchall()
    return [
        ExtremeRating(url=str(r["url"]), rating=int(r["rating"]), category_id=int(r["category_id"]))
        for r in rows
    ]


def get_minmax_images(conn: sqlite3.Connection, session_id: int) -> Dict[str, List[ExtremeRating]]:
    """
    Worst and best rated image per category for one session.

    Ties on the extreme score go to the earliest rating (lowest rating_id).
    """
    return {
        "minImages": _extremes(conn, session_id, "ASC"),
        "maxImages": _extremes(conn, session_id, "DESC"),
    }
