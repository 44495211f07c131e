import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    DATABASE_NAME = os.environ.get("BOOKMARKS_DB_NAME", "bookmarks")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / f'{DATABASE_NAME}.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEFAULT_OWNER_ID = os.environ.get("DEFAULT_OWNER_ID", "local")
    MAX_IMPORT_BYTES = int(os.environ.get("MAX_IMPORT_BYTES", "5000000"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
