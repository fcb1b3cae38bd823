# storefront/db.py
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from storefront import config
from storefront.models import Base, CmsBase


def make_engine(url: str):
    # in-memory sqlite must share one connection across sessions
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(url, future=True, connect_args={"check_same_thread": False},
                             poolclass=StaticPool)
    return create_engine(url, future=True)


# ---------- Engines ----------
_engines = {}

def engine_for(url: str, metadata):
    if url not in _engines:
        engine = make_engine(url)
        metadata.create_all(engine)
        _engines[url] = engine
    return _engines[url]

def main_engine(url=None):
    return engine_for(url or config.DATABASE_URL, Base.metadata)      # cart snapshots

def cms_engine(url=None):
    return engine_for(url or config.CMS_DATABASE_URL, CmsBase.metadata)  # product documents

def main_session(url=None):
    return Session(main_engine(url))
