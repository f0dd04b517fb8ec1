"""
Shared test setup: isolated configuration, logs and an in-memory database.
"""
import os
import tempfile
from pathlib import Path

# Must run before quoteforge is imported: the Config and Logger singletons
# read their directories on first import.
_TEST_DIR = Path(tempfile.mkdtemp(prefix='quoteforge-tests-'))
os.environ['QUOTEFORGE_CONFIG_DIR'] = str(_TEST_DIR / 'config')
(_TEST_DIR / 'config').mkdir()
(_TEST_DIR / 'config' / 'settings.ini').write_text(
    "[DATABASE]\n"
    "url = sqlite://\n"
    "echo = False\n"
    "\n"
    "[LOGGING]\n"
    "level = DEBUG\n"
    "format = %(asctime)s - %(name)s - %(levelname)s - %(message)s\n"
    f"directory = {_TEST_DIR / 'logs'}\n"
    "max_size_mb = 1\n"
    "backup_count = 1\n"
    "console_output = False\n"
    "\n"
    "[PRICING]\n"
    "base_currency = FJD\n"
    "vat_rate = 0.125\n"
    "quote_validity_days = 14\n"
    "low_gm_threshold = 0.08\n"
    "critical_gm_threshold = 0.05\n"
    "smart_approval_floor = 0.15\n"
    "default_markup_percent = 0.25\n"
)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


@pytest.fixture
def session():
    """Session bound to a fresh in-memory SQLite database."""
    from quoteforge.models import Base

    engine = create_engine('sqlite://', poolclass=StaticPool, connect_args={'check_same_thread': False})
    Base.metadata.create_all(engine)
    db_session = sessionmaker(bind=engine)()
    try:
        yield db_session
    finally:
        db_session.close()
        engine.dispose()
