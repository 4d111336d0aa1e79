from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from gymos.core.config import settings

class Base(DeclarativeBase): pass

def make_engine(dsn: str, **kwargs):
    if dsn.startswith('sqlite'):
        # sessions are handed across threadpool workers
        kwargs.setdefault('connect_args', {'check_same_thread': False})
    else:
        kwargs.setdefault('pool_pre_ping', True)
    return create_engine(dsn, **kwargs)

engine = make_engine(settings.POSTGRES_DSN)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
