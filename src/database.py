import os
from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from dotenv import load_dotenv
from asyncpg import Connection
from uuid import uuid4
from sqlalchemy import (
    Boolean, Column, ForeignKey, Integer, String,
    func, DateTime,
)
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.pool import NullPool

load_dotenv()

POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_DB = os.getenv("POSTGRES_DB_URL")

class Base(DeclarativeBase): pass


def database_url() -> str:
    """DATABASE_URL wins; otherwise build the asyncpg url from POSTGRES_* vars."""
    url = os.getenv("DATABASE_URL")
    if url:
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url
    postgres_file_name = f"{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_DB}"
    return f"postgresql+asyncpg://{postgres_file_name}"


class FixedConnection(Connection):
    def _get_unique_id(self, prefix: str) -> str:
        return f'__asyncpg_{prefix}_{uuid4()}__'


engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Create the engine on first use so tests can swap DATABASE_URL at runtime."""
    global engine, AsyncSessionLocal

    if engine is None:
        url = database_url()
        if url.startswith("sqlite"):
            engine = create_async_engine(url, echo=False, poolclass=NullPool)
        else:
            engine = create_async_engine(
                url,
                echo=False,
                future=True,
                connect_args={
                    "statement_cache_size": 0,
                    "prepared_statement_cache_size": 0,
                    "connection_class": FixedConnection,
                }
            )
        # Фабрика сессий
        AsyncSessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
    return engine


def get_sessionmaker() -> async_sessionmaker:
    if AsyncSessionLocal is None:
        get_engine()
    return AsyncSessionLocal


async def dispose_engine():
    global engine, AsyncSessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


async def create_tables():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


#ORM

class TournamentORM(Base):
    __tablename__ = "tournaments"

    id            = Column(String, primary_key=True)
    name          = Column(String, nullable=False)
    courts        = Column(Integer, nullable=False, default=1)
    created_at    = Column(DateTime(timezone=True), server_default=func.now())

    pairs = relationship(
        "PairORM",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="PairORM.created_at",
        lazy="selectin",
    )
    matches = relationship(
        "MatchORM",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="MatchORM.round, MatchORM.court",
        lazy="selectin",
    )


class PlayerORM(Base):
    __tablename__ = "players"

    id            = Column(String, primary_key=True)
    name          = Column(String, nullable=False)
    created_at    = Column(DateTime(timezone=True), server_default=func.now())


class PairORM(Base):
    __tablename__ = "pairs"

    id            = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    player1_id    = Column(String, ForeignKey("players.id"), nullable=False)
    player2_id    = Column(String, ForeignKey("players.id"), nullable=False)
    created_at    = Column(DateTime(timezone=True), server_default=func.now())

    tournament = relationship("TournamentORM", back_populates="pairs")
    player1    = relationship("PlayerORM", foreign_keys=[player1_id], lazy="selectin")
    player2    = relationship("PlayerORM", foreign_keys=[player2_id], lazy="selectin")


class MatchORM(Base):
    __tablename__ = "matches"

    id            = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    pair1_id      = Column(String, nullable=False)
    pair2_id      = Column(String, nullable=False)
    round         = Column(Integer, nullable=False, default=1)
    court         = Column(Integer, nullable=False, default=1)
    status        = Column(String, nullable=False, default="in_progress")  # in_progress | finished

    tournament = relationship("TournamentORM", back_populates="matches")
    games = relationship(
        "GameORM",
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="GameORM.game_number",
        lazy="selectin",
    )


class GameORM(Base):
    __tablename__ = "games"

    id                     = Column(String, primary_key=True)
    match_id               = Column(String, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    game_number            = Column(Integer, nullable=False)
    is_tie_break           = Column(Boolean, nullable=False, default=False)
    pair1_games            = Column(Integer, nullable=False, default=0)
    pair2_games            = Column(Integer, nullable=False, default=0)
    tie_break_pair1_points = Column(Integer, nullable=False, default=0)
    tie_break_pair2_points = Column(Integer, nullable=False, default=0)

    match = relationship("MatchORM", back_populates="games")
