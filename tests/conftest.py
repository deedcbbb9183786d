import os
import tempfile
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Must be set before guestlist.config is imported.
os.environ["GUESTLIST_DB"] = str(Path(tempfile.mkdtemp()) / "guestlist-test.db")
os.environ.pop("GUESTLIST_STORE", None)
os.environ.pop("GUESTLIST_NOTIFY_URL", None)

from guestlist import models  # noqa: E402,F401  registers tables
from guestlist.database import Base, make_engine  # noqa: E402


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()
