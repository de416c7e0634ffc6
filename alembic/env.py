from alembic import context
from sqlalchemy import create_engine
from arena.config import get_settings
from arena.database import Base
import arena.models  # noqa: F401  registers every table on Base.metadata

config = context.config
target_metadata = Base.metadata

# An explicit URL (alembic -x or Config.set_main_option) wins over settings
DATABASE_URL = config.get_main_option("sqlalchemy.url") or get_settings().database_url


def run_migrations_offline():
    context.configure(url=DATABASE_URL, target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
