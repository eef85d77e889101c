# backend/changeflow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///changeflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Whole unit-of-work attempts for transient store failures (1 retry by default)
    CHANGEFLOW_RETRY_ATTEMPTS = int(os.environ.get("CHANGEFLOW_RETRY_ATTEMPTS", "2"))
    CHANGEFLOW_RETRY_BACKOFF = float(os.environ.get("CHANGEFLOW_RETRY_BACKOFF", "0.1"))

    # Minimum digits in the sequence part of ECR/ECO/ECN numbers
    CHANGEFLOW_SEQUENCE_PAD = int(os.environ.get("CHANGEFLOW_SEQUENCE_PAD", "3"))
