# alembic/env.py
# Миграции схемы леджера. Строка подключения берётся из тех же настроек,
# что и у приложения (src.config.Settings: DATABASE_URL / .env).

from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from alembic import context

from src.config import Settings
from src.db import Base  # src.db импортирует все модели леджера

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

settings = Settings.from_env()


def run_migrations_offline():
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = create_engine(settings.database_url, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        # sqlite не умеет ALTER COLUMN: batch-режим пересоздаёт таблицу
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
