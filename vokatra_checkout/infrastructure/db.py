from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from vokatra_checkout.core_settings import get_settings
from vokatra_checkout.domain.models import Base

def build_engine(url: str = None, **kwargs) -> Engine:
    url = url or get_settings().database_url
    return create_engine(url, echo=False, future=True, pool_pre_ping=True, **kwargs)

def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

def init_models(engine: Engine):
    Base.metadata.create_all(engine)
