"""Data access for retas backed by async SQLAlchemy.

Every call opens its own session, so independent fetches can run concurrently
under ``asyncio.gather``.
"""
import logging
from contextlib import asynccontextmanager
from typing import List

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from database import GameORM, MatchORM, PairORM, PlayerORM, TournamentORM
from reta.exceptions import (
    DataFetchFailure, GameNotFound, MatchNotFound, PairConflict, PairNotFound,
    PlayerInUse, PlayerNotFound, TournamentNotFound,
)
from reta.models import (
    FINISHED, IN_PROGRESS,
    Game, GameScore, Match, Pair, Player, Tournament, generate_id,
)

logger = logging.getLogger(__name__)


# -- Helpers -------------------------------------------------------------------

def _iso(value):
    return value.isoformat() if value is not None else None


def _orm_to_tournament(t_row: TournamentORM) -> Tournament:
    return Tournament(
        id=t_row.id, name=t_row.name, courts=t_row.courts,
        created_at=_iso(t_row.created_at),
    )


def _orm_to_pair(p: PairORM) -> Pair:
    return Pair(
        id=p.id, tournament_id=p.tournament_id,
        player1_id=p.player1_id, player2_id=p.player2_id,
        created_at=_iso(p.created_at),
        player1_name=p.player1.name if p.player1 else None,
        player2_name=p.player2.name if p.player2 else None,
    )


def _orm_to_match(m: MatchORM) -> Match:
    return Match(
        id=m.id, tournament_id=m.tournament_id,
        pair1_id=m.pair1_id, pair2_id=m.pair2_id,
        court=m.court, round=m.round, status=m.status,
    )


def _orm_to_game(g: GameORM) -> Game:
    return Game(
        id=g.id, match_id=g.match_id, game_number=g.game_number,
        is_tie_break=g.is_tie_break,
        pair1_games=g.pair1_games, pair2_games=g.pair2_games,
        tie_break_pair1_points=g.tie_break_pair1_points,
        tie_break_pair2_points=g.tie_break_pair2_points,
    )


def _apply_score(game_orm: GameORM, score: GameScore):
    game_orm.is_tie_break           = score.is_tie_break
    game_orm.pair1_games            = score.pair1_games
    game_orm.pair2_games            = score.pair2_games
    game_orm.tie_break_pair1_points = score.tie_break_pair1_points
    game_orm.tie_break_pair2_points = score.tie_break_pair2_points


class RetaRepository:

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def _session(self, action: str):
        try:
            async with self._sessionmaker() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.error("%s failed: %s", action, exc)
            raise DataFetchFailure(f"{action} failed") from exc

    # -- Reads -----------------------------------------------------------------

    async def fetch_tournament(self, tid: str) -> Tournament:
        async with self._session("fetch tournament") as session:
            row = await session.get(TournamentORM, tid)
            if not row:
                raise TournamentNotFound(tid)
            return _orm_to_tournament(row)

    async def list_tournaments(self) -> List[Tournament]:
        async with self._session("list tournaments") as session:
            rows = await session.scalars(
                select(TournamentORM).order_by(TournamentORM.created_at.desc(), TournamentORM.id)
            )
            return [_orm_to_tournament(t) for t in rows]

    async def fetch_pairs(self, tid: str) -> List[Pair]:
        async with self._session("fetch pairs") as session:
            rows = await session.scalars(
                select(PairORM)
                .where(PairORM.tournament_id == tid)
                .order_by(PairORM.created_at, PairORM.id)
            )
            return [_orm_to_pair(p) for p in rows]

    async def fetch_matches(self, tid: str) -> List[Match]:
        async with self._session("fetch matches") as session:
            rows = await session.scalars(
                select(MatchORM)
                .where(MatchORM.tournament_id == tid)
                .order_by(MatchORM.round, MatchORM.court, MatchORM.id)
            )
            return [_orm_to_match(m) for m in rows]

    async def fetch_match(self, match_id: str) -> Match:
        async with self._session("fetch match") as session:
            row = await session.get(MatchORM, match_id)
            if not row:
                raise MatchNotFound(match_id)
            return _orm_to_match(row)

    async def fetch_games(self, match_id: str) -> List[Game]:
        async with self._session("fetch games") as session:
            rows = await session.scalars(
                select(GameORM)
                .where(GameORM.match_id == match_id)
                .order_by(GameORM.game_number)
            )
            return [_orm_to_game(g) for g in rows]

    async def fetch_game(self, game_id: str) -> Game:
        async with self._session("fetch game") as session:
            row = await session.get(GameORM, game_id)
            if not row:
                raise GameNotFound(game_id)
            return _orm_to_game(row)

    async def list_players(self) -> List[Player]:
        async with self._session("list players") as session:
            rows = await session.scalars(select(PlayerORM).order_by(PlayerORM.name))
            return [Player(id=p.id, name=p.name) for p in rows]

    # -- Match status and games ------------------------------------------------

    async def set_match_status(self, match_id: str, finished: bool) -> Match:
        async with self._session("set match status") as session:
            match_orm = await session.get(MatchORM, match_id)
            if not match_orm:
                raise MatchNotFound(match_id)
            match_orm.status = FINISHED if finished else IN_PROGRESS
            await session.commit()
            return _orm_to_match(match_orm)

    async def add_game(self, match_id: str, score: GameScore) -> Game:
        async with self._session("add game") as session:
            match_orm = await session.get(MatchORM, match_id)
            if not match_orm:
                raise MatchNotFound(match_id)
            last = await session.scalar(
                select(func.max(GameORM.game_number)).where(GameORM.match_id == match_id)
            )
            game_orm = GameORM(id=generate_id(), match_id=match_id, game_number=(last or 0) + 1)
            _apply_score(game_orm, score)
            session.add(game_orm)
            await session.commit()
            return _orm_to_game(game_orm)

    async def edit_game(self, game_id: str, score: GameScore) -> Game:
        async with self._session("edit game") as session:
            game_orm = await session.get(GameORM, game_id)
            if not game_orm:
                raise GameNotFound(game_id)
            _apply_score(game_orm, score)
            await session.commit()
            return _orm_to_game(game_orm)

    async def remove_game(self, game_id: str) -> None:
        async with self._session("remove game") as session:
            game_orm = await session.get(GameORM, game_id)
            if not game_orm:
                raise GameNotFound(game_id)
            await session.delete(game_orm)
            await session.commit()

    # -- Tournaments, players, pairs, matches ----------------------------------

    async def create_tournament(self, name: str, courts: int = 1) -> Tournament:
        async with self._session("create tournament") as session:
            t_orm = TournamentORM(id=generate_id(), name=name, courts=courts)
            session.add(t_orm)
            await session.commit()
            return Tournament(id=t_orm.id, name=name, courts=courts)

    async def create_player(self, name: str) -> Player:
        async with self._session("create player") as session:
            player_orm = PlayerORM(id=generate_id(), name=name)
            session.add(player_orm)
            await session.commit()
            return Player(id=player_orm.id, name=name)

    async def delete_player(self, player_id: str) -> None:
        async with self._session("delete player") as session:
            player_orm = await session.get(PlayerORM, player_id)
            if not player_orm:
                raise PlayerNotFound(player_id)
            in_pair = await session.scalar(
                select(func.count(PairORM.id)).where(
                    or_(PairORM.player1_id == player_id, PairORM.player2_id == player_id)
                )
            )
            if in_pair:
                raise PlayerInUse(f"player '{player_orm.name}' belongs to a pair")
            await session.delete(player_orm)
            await session.commit()

    async def create_pair(self, tid: str, player1_id: str, player2_id: str) -> Pair:
        if player1_id == player2_id:
            raise PairConflict("a pair needs two different players")

        async with self._session("create pair") as session:
            if not await session.get(TournamentORM, tid):
                raise TournamentNotFound(tid)
            player1 = await session.get(PlayerORM, player1_id)
            if not player1:
                raise PlayerNotFound(player1_id)
            player2 = await session.get(PlayerORM, player2_id)
            if not player2:
                raise PlayerNotFound(player2_id)

            players = (player1_id, player2_id)
            taken = await session.scalars(
                select(PairORM).where(
                    PairORM.tournament_id == tid,
                    or_(PairORM.player1_id.in_(players), PairORM.player2_id.in_(players)),
                )
            )
            for existing in taken:
                busy = player1 if player1_id in (existing.player1_id, existing.player2_id) else player2
                raise PairConflict(f"player '{busy.name}' already plays in a pair")

            pair_orm = PairORM(
                id=generate_id(), tournament_id=tid,
                player1_id=player1_id, player2_id=player2_id,
            )
            session.add(pair_orm)
            await session.commit()
            return Pair(
                id=pair_orm.id, tournament_id=tid,
                player1_id=player1_id, player2_id=player2_id,
                player1_name=player1.name, player2_name=player2.name,
            )

    async def delete_pair(self, tid: str, pair_id: str) -> None:
        async with self._session("delete pair") as session:
            pair_orm = await session.get(PairORM, pair_id)
            if not pair_orm or pair_orm.tournament_id != tid:
                raise PairNotFound(pair_id)
            await session.delete(pair_orm)
            await session.commit()

    async def create_match(
        self, tid: str, pair1_id: str, pair2_id: str,
        court: int = 1, round: int = 1,
    ) -> Match:
        if pair1_id == pair2_id:
            raise PairConflict("a pair cannot play against itself")

        async with self._session("create match") as session:
            if not await session.get(TournamentORM, tid):
                raise TournamentNotFound(tid)
            for pair_id in (pair1_id, pair2_id):
                pair_orm = await session.get(PairORM, pair_id)
                if not pair_orm or pair_orm.tournament_id != tid:
                    raise PairNotFound(pair_id)

            match_orm = MatchORM(
                id=generate_id(), tournament_id=tid,
                pair1_id=pair1_id, pair2_id=pair2_id,
                court=court, round=round, status=IN_PROGRESS,
            )
            session.add(match_orm)
            await session.commit()
            return _orm_to_match(match_orm)
