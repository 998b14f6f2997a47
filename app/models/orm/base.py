import uuid

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import JSON

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


class CustomBase:
    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        columns = [(c.name, getattr(self, c.name)) for c in self.__table__.columns]
        column_str = ", ".join(f"{name}={value!r}" for name, value in columns)
        return f"{class_name}({column_str})"


Base = declarative_base(cls=CustomBase)
