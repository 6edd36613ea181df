# backend/hallqueue/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/hallqueue.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///hallqueue.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Local offset of the office clock. The service day (ticket and request
    # numbering reset) is the calendar date at this offset. Default: UTC+8.
    SERVICE_UTC_OFFSET_MINUTES = int(os.environ.get("SERVICE_UTC_OFFSET_MINUTES", "480"))

    # Human-facing number formats
    PERSON_ID_PREFIX = os.environ.get("PERSON_ID_PREFIX", "BH")
    TICKET_PREFIX = os.environ.get("TICKET_PREFIX", "Q")
    REQUEST_PREFIX = os.environ.get("REQUEST_PREFIX", "REQ")

    QUEUE_DONE_LIMIT = int(os.environ.get("QUEUE_DONE_LIMIT", "10"))
    MAX_ITEMS_PER_REQUEST = int(os.environ.get("MAX_ITEMS_PER_REQUEST", "50"))

    DUPLICATE_MATCH_LIMIT = int(os.environ.get("DUPLICATE_MATCH_LIMIT", "10"))
    DUPLICATE_FUZZY_THRESHOLD = float(os.environ.get("DUPLICATE_FUZZY_THRESHOLD", "0.2"))

    # "incremental" keeps one snapshot row per dimension updated by deltas;
    # "recompute" tabulates on every read.
    STATISTICS_STRATEGY = os.environ.get("STATISTICS_STRATEGY", "incremental")

    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "5"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.05"))

    # Set by the upstream identity layer on every staff request
    IDENTITY_HEADER = os.environ.get("IDENTITY_HEADER", "X-Staff-Identity")
