"""
FastAPI dependency injection providers.

Routes receive the engine through Depends(get_db_engine) so tests can swap it via
app.dependency_overrides.
"""

from __future__ import annotations

from typing import Generator

from sqlalchemy.engine import Engine

from sync_avito.db.engine import engine


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> mock_engine = Mock(spec=Engine)
        >>> app.dependency_overrides[get_db_engine] = lambda: mock_engine
    """
    yield engine
