"""Alembic environment for the session store (launch contexts and the audit log)."""
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sdoh_exchange.core.config import settings  # noqa: E402
from sdoh_exchange.models.base import Base  # noqa: E402
from sdoh_exchange.models import audit, launch_context  # noqa: F401, E402

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

# sqlite cannot ALTER most columns in place, batch mode rebuilds the table instead
RENDER_AS_BATCH = settings.DATABASE_URL.startswith("sqlite")


def migrate_offline() -> None:
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=Base.metadata,
        literal_binds=True,
        render_as_batch=RENDER_AS_BATCH,
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_online() -> None:
    engine = create_engine(settings.DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            render_as_batch=RENDER_AS_BATCH,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    migrate_offline()
else:
    migrate_online()
