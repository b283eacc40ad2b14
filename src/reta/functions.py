import logging
import unicodedata
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from reta.exceptions import InvalidScoreInput
from reta.models import (
    PAIR1, PAIR2, TIE,
    Game, GameOutcome, GameScore, Match, MatchResult, Pair, PairStanding,
)

logger = logging.getLogger(__name__)

SET_THRESHOLD = 6
MAX_GAMES = 7
MAX_TIE_BREAK_POINTS = 99
POSITION_MARKERS = {1: "🥇", 2: "🥈", 3: "🥉"}


def _num(value) -> int:
    return value or 0


def interpret_game(game: Game) -> GameOutcome:
    """Decide who won one game and what each side takes from it.

    Tie-break games are won on tie-break points and never give set credit.
    In a normal game each side gets a set credit on its own once it reaches
    six games, so a 6-7 game credits both sides.
    """
    if game.is_tie_break:
        p1 = _num(game.tie_break_pair1_points)
        p2 = _num(game.tie_break_pair2_points)
        credit1 = credit2 = 0
    else:
        p1 = _num(game.pair1_games)
        p2 = _num(game.pair2_games)
        credit1 = 1 if p1 >= SET_THRESHOLD else 0
        credit2 = 1 if p2 >= SET_THRESHOLD else 0

    if p1 > p2:
        winner = PAIR1
    elif p2 > p1:
        winner = PAIR2
    else:
        winner = None

    return GameOutcome(
        winner=winner,
        pair1_points=p1,
        pair2_points=p2,
        pair1_set_credit=credit1,
        pair2_set_credit=credit2,
    )


def compute_match_result(
    match: Match,
    games: Iterable[Game],
    pair1: Optional[Pair] = None,
    pair2: Optional[Pair] = None,
) -> MatchResult:
    """Fold the games of one match into a MatchResult.

    The winner compares games won only and does not look at the match status,
    so it can be shown while the match is still being played.
    """
    result = MatchResult(match_id=match.id)
    for game in games:
        outcome = interpret_game(game)
        if outcome.winner == PAIR1:
            result.pair1_games_won += 1
        elif outcome.winner == PAIR2:
            result.pair2_games_won += 1
        result.pair1_sets_won += outcome.pair1_set_credit
        result.pair2_sets_won += outcome.pair2_set_credit
        result.pair1_total_points += outcome.pair1_points
        result.pair2_total_points += outcome.pair2_points

    if result.pair1_games_won > result.pair2_games_won:
        result.winner = PAIR1
        result.label = f"Winner: {_pair_label(pair1)}"
    elif result.pair2_games_won > result.pair1_games_won:
        result.winner = PAIR2
        result.label = f"Winner: {_pair_label(pair2)}"
    else:
        result.winner = TIE
        result.label = f"Tie ({result.pair1_games_won}-{result.pair2_games_won})"
    return result


def _pair_label(pair: Optional[Pair]) -> str:
    if pair is None:
        return "Unknown pair"
    return pair.label


def accumulate_standings(
    pairs: Iterable[Pair],
    matches: Iterable[Match],
    games: Iterable[Game],
) -> Dict[str, PairStanding]:
    """Per-pair totals over every finished match that has games.

    Every pair starts at zero and is always present in the output. Matches that
    reference an unknown pair are skipped.
    """
    standings: Dict[str, PairStanding] = {
        p.id: PairStanding(
            pair_id=p.id,
            player1_name=p.player1_name,
            player2_name=p.player2_name,
        )
        for p in pairs
    }

    games_by_match: Dict[str, List[Game]] = defaultdict(list)
    for game in games:
        games_by_match[game.match_id].append(game)

    for match in matches:
        if not match.finished:
            continue
        match_games = games_by_match.get(match.id)
        if not match_games:
            continue

        s1 = standings.get(match.pair1_id)
        s2 = standings.get(match.pair2_id)
        if s1 is None or s2 is None:
            logger.warning(
                "Skipping match %s: pair %s or %s not in tournament %s",
                match.id, match.pair1_id, match.pair2_id, match.tournament_id,
            )
            continue

        result = compute_match_result(match, match_games)
        s1.matches_played += 1
        s1.games_won += result.pair1_games_won
        s1.sets_won  += result.pair1_sets_won
        s1.points    += result.pair1_total_points

        s2.matches_played += 1
        s2.games_won += result.pair2_games_won
        s2.sets_won  += result.pair2_sets_won
        s2.points    += result.pair2_total_points

    return standings


def _collation_key(name: str) -> str:
    """Accent- and case-insensitive key, so "ana" < "Ángel" < "Zoe"."""
    decomposed = unicodedata.normalize("NFKD", name)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def _rank_key(s: PairStanding):
    name = s.display_name
    return (-s.points, -s.sets_won, -s.games_won, _collation_key(name), name, s.pair_id)


def rank_standings(standings: Iterable[PairStanding]) -> List[PairStanding]:
    """Order by points, sets won, games won, then pair name."""
    ranked = sorted(standings, key=_rank_key)
    for i, s in enumerate(ranked):
        s.position = i + 1
        s.marker = POSITION_MARKERS.get(s.position, "")
    return ranked


def compute_standings(
    pairs: Iterable[Pair],
    matches: Iterable[Match],
    games: Iterable[Game],
) -> List[PairStanding]:
    return rank_standings(accumulate_standings(pairs, matches, games).values())


# -- Score input ---------------------------------------------------------------

def _parse_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "on", "yes")


def _parse_score_value(name: str, value, maximum: int) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    # bool is a subclass of int
    if isinstance(value, bool):
        raise InvalidScoreInput(f"{name} must be an integer")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise InvalidScoreInput(f"{name} must be an integer") from None
    if number < 0 or number > maximum:
        raise InvalidScoreInput(f"{name} must be between 0 and {maximum}")
    return number


def parse_game_score(
    pair1_games=None,
    pair2_games=None,
    is_tie_break=False,
    tie_break_pair1_points=None,
    tie_break_pair2_points=None,
) -> GameScore:
    """Validate raw form values into a GameScore or raise InvalidScoreInput."""
    if _parse_flag(is_tie_break):
        return GameScore(
            is_tie_break=True,
            tie_break_pair1_points=_parse_score_value(
                "tie_break_pair1_points", tie_break_pair1_points, MAX_TIE_BREAK_POINTS),
            tie_break_pair2_points=_parse_score_value(
                "tie_break_pair2_points", tie_break_pair2_points, MAX_TIE_BREAK_POINTS),
        )
    return GameScore(
        is_tie_break=False,
        pair1_games=_parse_score_value("pair1_games", pair1_games, MAX_GAMES),
        pair2_games=_parse_score_value("pair2_games", pair2_games, MAX_GAMES),
    )
