"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Request

from royalty_engine.database import Database
from royalty_engine.services import RoyaltyEngine


def get_database(request: Request) -> Database:
    """Database owned by the application."""
    return request.app.state.db


def get_royalty_engine(request: Request) -> RoyaltyEngine:
    """Engine owned by the application."""
    return request.app.state.engine


# Type aliases for cleaner dependency injection
Db = Annotated[Database, Depends(get_database)]
Engine = Annotated[RoyaltyEngine, Depends(get_royalty_engine)]
