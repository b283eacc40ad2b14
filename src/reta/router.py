import asyncio
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Form, Depends, HTTPException, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse

from database import get_sessionmaker
from reta.exceptions import DataFetchFailure, GameNotFound, MatchNotFound
from reta.functions import compute_match_result, parse_game_score
from reta.models import Match
from reta.recompute import StandingsBoard, board
from reta.repository import RetaRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/retas', tags=['Retas'])

# -- Dependencies --------------------------------------------------------------

def get_repository() -> RetaRepository:
    return RetaRepository(get_sessionmaker())


def get_board() -> StandingsBoard:
    return board


# -- Helpers -------------------------------------------------------------------

async def _get_match(repo: RetaRepository, tid: str, mid: str) -> Match:
    match = await repo.fetch_match(mid)
    if match.tournament_id != tid:
        raise MatchNotFound(mid)
    return match


async def _check_game(repo: RetaRepository, mid: str, gid: str):
    game = await repo.fetch_game(gid)
    if game.match_id != mid:
        raise GameNotFound(gid)


def _standings_json(standings):
    return [asdict(s) for s in standings or []]


def _match_card(match, games, pairs_by_id):
    pair1 = pairs_by_id.get(match.pair1_id)
    pair2 = pairs_by_id.get(match.pair2_id)
    result = compute_match_result(match, games, pair1, pair2)
    return {
        **asdict(match),
        "pair1": pair1.label if pair1 else None,
        "pair2": pair2.label if pair2 else None,
        "games": [asdict(g) for g in games],
        "result": asdict(result),
    }


# Routes

@router.post("/create")
async def create_reta(
    name: str = Form(...),
    courts: int = Form(1),
    repo: RetaRepository = Depends(get_repository),
):
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Enter a tournament name")
    if courts < 1:
        raise HTTPException(status_code=400, detail="At least one court is required")

    t = await repo.create_tournament(name, courts)
    logger.info("Created reta %s (%s)", t.id, t.name)
    return RedirectResponse(f"/retas/{t.id}", status_code=303)


# -- Players -------------------------------------------------------------------

@router.api_route("/players", methods=["GET", "HEAD"])
async def list_players(repo: RetaRepository = Depends(get_repository)):
    players = await repo.list_players()
    return {"players": [asdict(p) for p in players]}


@router.post("/players")
async def create_player(
    name: str = Form(...),
    repo: RetaRepository = Depends(get_repository),
):
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Enter a player name")
    await repo.create_player(name)
    return RedirectResponse("/retas/players", status_code=303)


@router.post("/players/{pid}/delete")
async def delete_player(pid: str, repo: RetaRepository = Depends(get_repository)):
    await repo.delete_player(pid)
    return RedirectResponse("/retas/players", status_code=303)


# -- Tournament view and standings ---------------------------------------------

@router.head("/{tid}")
async def reta_head(tid: str, repo: RetaRepository = Depends(get_repository)):
    await repo.fetch_tournament(tid)
    return Response(status_code=200)


def _stale_response(exc: DataFetchFailure, standings_board: StandingsBoard, tid: str):
    # Keep showing what was shown before rather than a partial table.
    return JSONResponse(status_code=exc.status_code, content={
        "title": exc.title,
        "detail": exc.detail,
        "status": exc.status_code,
        "code": exc.code,
        "standings": jsonable_encoder(_standings_json(standings_board.latest(tid))),
        "stale": True,
    })


@router.get("/{tid}")
async def reta_view(
    tid: str,
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    t = await repo.fetch_tournament(tid)
    try:
        snap = await standings_board.snapshot(repo, tid)
    except DataFetchFailure as exc:
        return _stale_response(exc, standings_board, tid)

    pairs_by_id = {p.id: p for p in snap.pairs}
    return {
        "tournament": asdict(t),
        "pairs": [{**asdict(p), "label": p.label} for p in snap.pairs],
        "matches": [
            _match_card(m, games, pairs_by_id)
            for m, games in zip(snap.matches, snap.game_lists)
        ],
        "standings": _standings_json(snap.standings),
        "stale": False,
    }


@router.get("/{tid}/standings")
async def reta_standings(
    tid: str,
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    await repo.fetch_tournament(tid)
    try:
        standings = await standings_board.refresh(repo, tid)
    except DataFetchFailure as exc:
        return _stale_response(exc, standings_board, tid)
    return {"standings": _standings_json(standings), "stale": False}


@router.post("/{tid}/standings/recalculate")
async def reta_recalculate(
    tid: str,
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    await repo.fetch_tournament(tid)
    standings_board.invalidate(tid)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}/standings", status_code=303)


# -- Pairs ---------------------------------------------------------------------

@router.post("/{tid}/pairs")
async def create_pair(
    tid: str,
    player1_id: str = Form(...),
    player2_id: str = Form(...),
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    pair = await repo.create_pair(tid, player1_id, player2_id)
    logger.info("Pair %s (%s) joined reta %s", pair.id, pair.label, tid)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}", status_code=303)


@router.post("/{tid}/pairs/{pair_id}/delete")
async def delete_pair(
    tid: str,
    pair_id: str,
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    await repo.delete_pair(tid, pair_id)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}", status_code=303)


# -- Matches -------------------------------------------------------------------

@router.post("/{tid}/matches")
async def create_match(
    tid: str,
    pair1_id: str = Form(...),
    pair2_id: str = Form(...),
    court: int = Form(1),
    round: int = Form(1),
    repo: RetaRepository = Depends(get_repository),
):
    match = await repo.create_match(tid, pair1_id, pair2_id, court=court, round=round)
    return RedirectResponse(f"/retas/{tid}/matches/{match.id}", status_code=303)


@router.get("/{tid}/matches/{mid}")
async def match_view(tid: str, mid: str, repo: RetaRepository = Depends(get_repository)):
    match = await _get_match(repo, tid, mid)
    pairs, games = await asyncio.gather(repo.fetch_pairs(tid), repo.fetch_games(mid))
    return _match_card(match, games, {p.id: p for p in pairs})


@router.post("/{tid}/matches/{mid}/finish")
async def finish_match(
    tid: str,
    mid: str,
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    match = await _get_match(repo, tid, mid)
    if match.finished:
        return RedirectResponse(f"/retas/{tid}", status_code=303)

    await repo.set_match_status(mid, finished=True)
    logger.info("Match %s finished", mid)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}", status_code=303)


@router.post("/{tid}/matches/{mid}/reopen")
async def reopen_match(
    tid: str,
    mid: str,
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    match = await _get_match(repo, tid, mid)
    if not match.finished:
        return RedirectResponse(f"/retas/{tid}", status_code=303)

    await repo.set_match_status(mid, finished=False)
    logger.info("Match %s reopened", mid)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}", status_code=303)


# -- Games ---------------------------------------------------------------------

@router.post("/{tid}/matches/{mid}/games")
async def add_game(
    tid: str,
    mid: str,
    pair1_games: Optional[str] = Form(None),
    pair2_games: Optional[str] = Form(None),
    is_tie_break: Optional[str] = Form(None),
    tie_break_pair1_points: Optional[str] = Form(None),
    tie_break_pair2_points: Optional[str] = Form(None),
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    score = parse_game_score(
        pair1_games, pair2_games, is_tie_break,
        tie_break_pair1_points, tie_break_pair2_points,
    )
    await _get_match(repo, tid, mid)
    await repo.add_game(mid, score)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}/matches/{mid}", status_code=303)


@router.post("/{tid}/matches/{mid}/games/{gid}/edit")
async def edit_game(
    tid: str,
    mid: str,
    gid: str,
    pair1_games: Optional[str] = Form(None),
    pair2_games: Optional[str] = Form(None),
    is_tie_break: Optional[str] = Form(None),
    tie_break_pair1_points: Optional[str] = Form(None),
    tie_break_pair2_points: Optional[str] = Form(None),
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    score = parse_game_score(
        pair1_games, pair2_games, is_tie_break,
        tie_break_pair1_points, tie_break_pair2_points,
    )
    await _get_match(repo, tid, mid)
    await _check_game(repo, mid, gid)
    await repo.edit_game(gid, score)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}/matches/{mid}", status_code=303)


@router.post("/{tid}/matches/{mid}/games/{gid}/delete")
async def delete_game(
    tid: str,
    mid: str,
    gid: str,
    repo: RetaRepository = Depends(get_repository),
    standings_board: StandingsBoard = Depends(get_board),
):
    await _get_match(repo, tid, mid)
    await _check_game(repo, mid, gid)
    await repo.remove_game(gid)
    await standings_board.refresh(repo, tid)
    return RedirectResponse(f"/retas/{tid}/matches/{mid}", status_code=303)
