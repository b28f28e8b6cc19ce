SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

-- intake questionnaire, one row per participant

CREATE TABLE IF NOT EXISTS survey (
  survey_id            INTEGER PRIMARY KEY AUTOINCREMENT,
  age                  INTEGER NOT NULL CHECK (age >= 0),
  monthly_gross_income INTEGER,
  education            TEXT,
  gender               TEXT,
  country              TEXT,
  postalcode           TEXT,
  consent              INTEGER NOT NULL CHECK (consent IN (0, 1)),
  created_at           TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS person (
  person_id  INTEGER PRIMARY KEY AUTOINCREMENT,
  survey_id  INTEGER NOT NULL UNIQUE,
  created_at TEXT NOT NULL DEFAULT (datetime('now')),
  FOREIGN KEY (survey_id) REFERENCES survey(survey_id)
);

-- a person may accumulate several sessions, the newest session_active wins

CREATE TABLE IF NOT EXISTS session (
  session_id     INTEGER PRIMARY KEY AUTOINCREMENT,
  person_id      INTEGER NOT NULL,
  session_active TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
  FOREIGN KEY (person_id) REFERENCES person(person_id)
);

CREATE INDEX IF NOT EXISTS idx_session_person_active
ON session(person_id, session_active);

CREATE TABLE IF NOT EXISTS useragent (
  useragent_id  TEXT PRIMARY KEY,               -- md5(useragent_str) as UUID
  useragent_str TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS cookie (
  cookie_hash  BLOB PRIMARY KEY,                -- raw HMAC digest
  person_id    INTEGER NOT NULL,
  useragent_id TEXT,
  ipaddr       TEXT,
  created_at   TEXT NOT NULL DEFAULT (datetime('now')),
  expiration   TEXT,                            -- NULL means never expires
  FOREIGN KEY (person_id) REFERENCES person(person_id),
  FOREIGN KEY (useragent_id) REFERENCES useragent(useragent_id)
);

CREATE INDEX IF NOT EXISTS idx_cookie_person ON cookie(person_id);

-- catalog, written only by scripts/seed_catalog.py

CREATE TABLE IF NOT EXISTS image (
  image_id INTEGER PRIMARY KEY,
  cityname TEXT NOT NULL,
  url      TEXT NOT NULL,
  enabled  INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS translation (
  string_id INTEGER NOT NULL,
  langabbr  TEXT NOT NULL,
  v         TEXT NOT NULL,
  PRIMARY KEY (string_id, langabbr)
);

CREATE TABLE IF NOT EXISTS category (
  category_id     INTEGER PRIMARY KEY,
  shortname_sid   INTEGER NOT NULL,
  description_sid INTEGER NOT NULL
);

-- rating facts

CREATE TABLE IF NOT EXISTS rating (
  rating_id    INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id   INTEGER NOT NULL,
  image_id     INTEGER NOT NULL,
  category_id  INTEGER NOT NULL,
  rating       INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
  useragent_id TEXT,
  ipaddr       TEXT,
  ts           TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
  FOREIGN KEY (session_id) REFERENCES session(session_id),
  FOREIGN KEY (image_id) REFERENCES image(image_id),
  FOREIGN KEY (category_id) REFERENCES category(category_id),
  FOREIGN KEY (useragent_id) REFERENCES useragent(useragent_id)
);

CREATE INDEX IF NOT EXISTS idx_rating_session_category
ON rating(session_id, category_id);

-- single level of undo: at most one row per session

CREATE TABLE IF NOT EXISTS undoable (
  session_id INTEGER PRIMARY KEY,
  rating_id  INTEGER NOT NULL,
  FOREIGN KEY (session_id) REFERENCES session(session_id),
  FOREIGN KEY (rating_id) REFERENCES rating(rating_id) ON DELETE CASCADE
);
"""
