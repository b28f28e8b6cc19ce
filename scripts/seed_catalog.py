#!/usr/bin/env python3
"""
Load the image catalog and the category taxonomy.

Expected files in --catalog-dir (CSV with a header row):
  images.csv        image_id,cityname,url[,enabled]
  translations.csv  string_id,langabbr,v
  categories.csv    category_id,shortname_sid,description_sid
"""
import argparse
import csv
import os
import sqlite3
from backend.app.db import connect, init_db, transaction


def _read_rows(path: str) -> list[dict[str, str]]:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return [row for row in csv.DictReader(f) if any((v or "").strip() for v in row.values())]


def _parse_enabled(raw: str | None) -> int:
    if raw is None or raw.strip() == "":
        return 1
    return 0 if raw.strip().lower() in ("0", "false", "no", "n") else 1


def seed_images(conn: sqlite3.Connection, images_path: str) -> int:
    rows = []
    for r in _read_rows(images_path):
        rows.append((int(r["image_id"]), r["cityname"].strip(), r["url"].strip(), _parse_enabled(r.get("enabled"))))
    conn.executemany(
        "INSERT OR REPLACE INTO image(image_id, cityname, url, enabled) VALUES(?,?,?,?)",
        rows,
    )
    return len(rows)


def seed_translations(conn: sqlite3.Connection, translations_path: str) -> int:
    rows = []
    for r in _read_rows(translations_path):
        rows.append((int(r["string_id"]), r["langabbr"].strip().lower(), r["v"]))
    conn.executemany(
        "INSERT OR REPLACE INTO translation(string_id, langabbr, v) VALUES(?,?,?)",
        rows,
    )
    return len(rows)


def seed_categories(conn: sqlite3.Connection, categories_path: str) -> int:
    rows = []
    for r in _read_rows(categories_path):
        rows.append((int(r["category_id"]), int(r["shortname_sid"]), int(r["description_sid"])))
    conn.executemany(
        "INSERT OR REPLACE INTO category(category_id, shortname_sid, description_sid) VALUES(?,?,?)",
        rows,
    )
    return len(rows)


def clear_catalog(conn: sqlite3.Connection) -> None:
    # ratings reference image/category, so those go first (and their undo rows)
    conn.execute("DELETE FROM undoable;")
    conn.execute("DELETE FROM rating;")
    conn.execute("DELETE FROM category;")
    conn.execute("DELETE FROM translation;")
    conn.execute("DELETE FROM image;")


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--catalog-dir", default="data/catalog")
    ap.add_argument("--reset", action="store_true", help="Clear catalog tables (and all ratings) before seeding")
    args = ap.parse_args()

    images = os.path.join(args.catalog_dir, "images.csv")
    translations = os.path.join(args.catalog_dir, "translations.csv")
    categories = os.path.join(args.catalog_dir, "categories.csv")

    for p in [images, translations, categories]:
        if not os.path.exists(p):
            raise SystemExit(f"Missing catalog file: {p}")

    conn = connect()
    init_db(conn)

    with transaction(conn):
        if args.reset:
            clear_catalog(conn)
        n_images = seed_images(conn, images)
        n_translations = seed_translations(conn, translations)
        n_categories = seed_categories(conn, categories)

    conn.close()
    print(f"Seeding complete: {n_images} images, {n_categories} categories, {n_translations} translations.")

if __name__ == "__main__":
    main()
