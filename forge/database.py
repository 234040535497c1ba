from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

# Imported for table registration on SQLModel.metadata
from forge.models.app import App  # noqa: F401
from forge.models.build_job import BuildJob  # noqa: F401

def create_db_engine(database_url: str, **kwargs) -> Engine:
    """Build the engine owned by the process composition root.

    SQLite connections are shared across threads by the pool and wait on a
    held write lock instead of failing straight away.
    """
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        kwargs["connect_args"] = connect_args
    return create_engine(database_url, **kwargs)

def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
