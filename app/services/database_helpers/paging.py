# /app/services/database_helpers/paging.py

from typing import List, Tuple

from sqlalchemy.orm import Query


def paginate(query: Query, offset: int, limit: int) -> Tuple[List, int]:
    """Runs an ordered query for one window of rows and returns them with the unwindowed count."""
    total = query.order_by(None).count()
    return query.offset(offset).limit(limit).all(), total
