# /app/db/base_class.py

from sqlalchemy.orm import declarative_base

# Every ORM model inherits from this Base; Alembic reads its metadata.
Base = declarative_base()
