from dataclasses import dataclass
from typing import Optional

IN_PROGRESS = "in_progress"
FINISHED = "finished"

PAIR1 = "pair1"
PAIR2 = "pair2"
TIE = "tie"


def generate_id():
    import uuid
    return str(uuid.uuid4())[:8]


@dataclass
class Player:
    id: str
    name: str


@dataclass
class Pair:
    id: str
    tournament_id: str
    player1_id: str
    player2_id: str
    created_at: Optional[str] = None
    player1_name: Optional[str] = None
    player2_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Ranking tie-break key: ``player1/player2``."""
        return f"{self.player1_name or ''}/{self.player2_name or ''}"

    @property
    def label(self) -> str:
        return f"{self.player1_name or 'Player 1'} / {self.player2_name or 'Player 2'}"


@dataclass
class Match:
    id: str
    tournament_id: str
    pair1_id: str
    pair2_id: str
    court: int = 1
    round: int = 1
    status: str = IN_PROGRESS  # in_progress, finished

    @property
    def finished(self) -> bool:
        return self.status == FINISHED


@dataclass
class Game:
    id: str
    match_id: str
    game_number: int
    is_tie_break: bool = False
    pair1_games: Optional[int] = 0
    pair2_games: Optional[int] = 0
    tie_break_pair1_points: Optional[int] = 0
    tie_break_pair2_points: Optional[int] = 0


@dataclass
class GameScore:
    """Validated score entry for creating or editing a game."""
    is_tie_break: bool = False
    pair1_games: int = 0
    pair2_games: int = 0
    tie_break_pair1_points: int = 0
    tie_break_pair2_points: int = 0


@dataclass(frozen=True)
class GameOutcome:
    winner: Optional[str]  # pair1, pair2 or None
    pair1_points: int
    pair2_points: int
    pair1_set_credit: int
    pair2_set_credit: int


@dataclass
class MatchResult:
    match_id: str
    pair1_games_won: int = 0
    pair2_games_won: int = 0
    pair1_sets_won: int = 0
    pair2_sets_won: int = 0
    pair1_total_points: int = 0
    pair2_total_points: int = 0
    winner: str = TIE  # pair1, pair2, tie
    label: str = ""


@dataclass
class PairStanding:
    pair_id: str
    player1_name: Optional[str] = None
    player2_name: Optional[str] = None
    games_won: int = 0
    sets_won: int = 0
    points: int = 0
    matches_played: int = 0
    position: int = 0
    marker: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.player1_name or ''}/{self.player2_name or ''}"


@dataclass
class Tournament:
    id: str
    name: str
    courts: int = 1
    created_at: Optional[str] = None
