"""Alembic migrations environment configuration."""
from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from sqlalchemy import create_engine

from alembic import context

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.config import get_settings
from core.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Database URL always comes from settings (DATABASE_URL / .env)
settings = get_settings()
DATABASE_URL = settings.database_url
IS_SQLITE = settings.is_sqlite()

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=IS_SQLITE,  # SQLite batch mode for ALTER operations
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    if IS_SQLITE:
        connectable = create_engine(
            DATABASE_URL,
            connect_args={"check_same_thread": False},
        )
    else:
        connectable = create_engine(DATABASE_URL)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=IS_SQLITE,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
