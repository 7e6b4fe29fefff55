# sealsend/db/init_db.py
from sqlalchemy.engine import Engine

from sealsend.db.base import Base

# import models so SQLAlchemy registers the tables
from sealsend import models  # noqa: F401


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
