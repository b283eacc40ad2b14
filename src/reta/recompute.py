"""Standings refresh: full recompute from the data layer on every change.

Nothing is patched incrementally. A refresh fetches every pair, match and game
of the tournament, and only a complete snapshot is turned into standings.
"""
import asyncio
import logging
from typing import Dict, List, NamedTuple, Optional, Protocol

from reta.exceptions import DataFetchFailure, RetaError
from reta.functions import compute_standings
from reta.models import Game, Match, Pair, PairStanding

logger = logging.getLogger(__name__)


class StandingsSource(Protocol):
    async def fetch_pairs(self, tid: str) -> List[Pair]: ...
    async def fetch_matches(self, tid: str) -> List[Match]: ...
    async def fetch_games(self, match_id: str) -> List[Game]: ...


class Snapshot(NamedTuple):
    pairs: List[Pair]
    matches: List[Match]
    game_lists: List[List[Game]]  # aligned with matches
    standings: List[PairStanding]


class StandingsBoard:
    """Latest published standings per tournament.

    Each refresh gets a ticket. When refreshes for one tournament overlap, only
    the one holding the newest ticket publishes; older results are still
    returned to their own caller but never overwrite the board.
    """

    def __init__(self):
        self._published: Dict[str, List[PairStanding]] = {}
        self._tickets: Dict[str, int] = {}
        self._in_flight: Dict[str, int] = {}

    def latest(self, tid: str) -> Optional[List[PairStanding]]:
        return self._published.get(tid)

    def is_loading(self, tid: str) -> bool:
        return self._in_flight.get(tid, 0) > 0

    def invalidate(self, tid: str):
        self._published.pop(tid, None)

    async def refresh(self, source: StandingsSource, tid: str) -> List[PairStanding]:
        return (await self.snapshot(source, tid)).standings

    async def snapshot(self, source: StandingsSource, tid: str) -> Snapshot:
        """Fetch everything for ``tid``, rank it and publish if still current."""
        ticket = self._tickets[tid] = self._tickets.get(tid, 0) + 1
        self._in_flight[tid] = self._in_flight.get(tid, 0) + 1
        try:
            pairs, matches, game_lists = await self._load(source, tid)
        finally:
            self._in_flight[tid] -= 1

        games = [g for game_list in game_lists for g in game_list]
        standings = compute_standings(pairs, matches, games)
        if ticket == self._tickets[tid]:
            self._published[tid] = standings
            logger.debug("Published standings for %s (%d pairs)", tid, len(standings))
        else:
            logger.debug("Discarding superseded standings for %s (ticket %d)", tid, ticket)
        return Snapshot(pairs, matches, game_lists, standings)

    async def _load(self, source: StandingsSource, tid: str):
        try:
            pairs, matches = await asyncio.gather(
                source.fetch_pairs(tid),
                source.fetch_matches(tid),
            )
            game_lists = await asyncio.gather(
                *(source.fetch_games(m.id) for m in matches)
            )
        except DataFetchFailure:
            logger.warning("Standings refresh for %s aborted, keeping previous standings", tid)
            raise
        except RetaError:
            raise
        except Exception as exc:
            logger.exception("Standings refresh for %s aborted", tid)
            raise DataFetchFailure(f"could not load tournament '{tid}'") from exc

        return pairs, matches, list(game_lists)


board = StandingsBoard()
