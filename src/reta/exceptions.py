class RetaError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    title = "Bad request"
    code = "reta_error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.title)
        self.detail = detail or self.title


class DataFetchFailure(RetaError):
    """The data layer could not deliver a complete snapshot; recompute is aborted."""

    status_code = 503
    title = "Data unavailable"
    code = "data_fetch_failure"


class InvalidScoreInput(RetaError, ValueError):
    status_code = 400
    title = "Invalid score"
    code = "invalid_score"


class NotFound(RetaError):
    status_code = 404
    title = "Not found"
    code = "not_found"
    kind = "object"

    def __init__(self, object_id: str) -> None:
        super().__init__(f"{self.kind} '{object_id}' not found")
        self.object_id = object_id


class TournamentNotFound(NotFound):
    title = "Tournament not found"
    code = "tournament_not_found"
    kind = "tournament"


class PlayerNotFound(NotFound):
    title = "Player not found"
    code = "player_not_found"
    kind = "player"


class PairNotFound(NotFound):
    title = "Pair not found"
    code = "pair_not_found"
    kind = "pair"


class MatchNotFound(NotFound):
    title = "Match not found"
    code = "match_not_found"
    kind = "match"


class GameNotFound(NotFound):
    title = "Game not found"
    code = "game_not_found"
    kind = "game"


class PairConflict(RetaError):
    status_code = 409
    title = "Pair conflict"
    code = "pair_conflict"


class PlayerInUse(RetaError):
    status_code = 409
    title = "Player in use"
    code = "player_in_use"
