def _create_reta(client, name="Friday reta"):
    resp = client.post("/retas/create", data={"name": name, "courts": 2})
    assert resp.status_code == 200
    return resp.json()["tournament"]["id"]


def _create_players(client, *names):
    for name in names:
        assert client.post("/retas/players", data={"name": name}).status_code == 200
    players = client.get("/retas/players").json()["players"]
    return {p["name"]: p["id"] for p in players}


def _setup_two_pairs(client):
    tid = _create_reta(client)
    ids = _create_players(client, "Ana", "Bea", "Carla", "Dani")
    client.post(f"/retas/{tid}/pairs", data={"player1_id": ids["Ana"], "player2_id": ids["Bea"]})
    client.post(f"/retas/{tid}/pairs", data={"player1_id": ids["Carla"], "player2_id": ids["Dani"]})
    pairs = {p["label"]: p["id"] for p in client.get(f"/retas/{tid}").json()["pairs"]}
    return tid, pairs["Ana / Bea"], pairs["Carla / Dani"]


def _create_match(client, tid, pair1, pair2):
    resp = client.post(f"/retas/{tid}/matches", data={"pair1_id": pair1, "pair2_id": pair2})
    assert resp.status_code == 200
    return resp.json()["id"]


def _add_game(client, tid, mid, **score):
    resp = client.post(f"/retas/{tid}/matches/{mid}/games", data=score)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _standings(client, tid):
    resp = client.get(f"/retas/{tid}/standings")
    assert resp.status_code == 200
    return {s["pair_id"]: s for s in resp.json()["standings"]}


def test_index_lists_retas(client):
    tid = _create_reta(client, "Sunday reta")
    assert client.head(f"/retas/{tid}").status_code == 200
    names = [t["name"] for t in client.get("/").json()["retas"]]
    assert "Sunday reta" in names


def test_new_pairs_start_at_zero(client):
    tid, x, y = _setup_two_pairs(client)

    view = client.get(f"/retas/{tid}").json()
    labels = [(s["player1_name"], s["player2_name"]) for s in view["standings"]]
    assert labels == [("Ana", "Bea"), ("Carla", "Dani")]
    for s in view["standings"]:
        assert (s["points"], s["sets_won"], s["games_won"], s["matches_played"]) == (0, 0, 0, 0)


def test_full_match_flow(client):
    tid, x, y = _setup_two_pairs(client)
    mid = _create_match(client, tid, x, y)

    _add_game(client, tid, mid, pair1_games="6", pair2_games="2")
    _add_game(client, tid, mid, pair1_games="4", pair2_games="6")
    card = _add_game(client, tid, mid, pair1_games="7", pair2_games="6")

    assert [g["game_number"] for g in card["games"]] == [1, 2, 3]
    assert card["result"]["winner"] == "pair1"
    assert card["result"]["label"] == "Winner: Ana / Bea"
    assert card["status"] == "in_progress"

    # in progress matches do not count yet
    assert _standings(client, tid)[x]["matches_played"] == 0

    view = client.post(f"/retas/{tid}/matches/{mid}/finish").json()
    top, second = view["standings"]
    assert top["pair_id"] == x and top["marker"] == "🥇"
    assert (top["games_won"], top["sets_won"], top["points"], top["matches_played"]) == (2, 2, 17, 1)
    assert second["pair_id"] == y and second["marker"] == "🥈"
    assert (second["games_won"], second["sets_won"], second["points"], second["matches_played"]) == (1, 2, 14, 1)

    # finishing twice never counts the match twice
    client.post(f"/retas/{tid}/matches/{mid}/finish")
    assert _standings(client, tid)[x]["matches_played"] == 1

    client.post(f"/retas/{tid}/matches/{mid}/reopen")
    after = _standings(client, tid)
    assert after[x]["matches_played"] == after[y]["matches_played"] == 0
    assert after[x]["points"] == after[y]["points"] == 0


def test_game_edits_recompute_finished_standings(client):
    tid, x, y = _setup_two_pairs(client)
    mid = _create_match(client, tid, x, y)
    card = _add_game(client, tid, mid, pair1_games="6", pair2_games="3")
    gid = card["games"][0]["id"]
    client.post(f"/retas/{tid}/matches/{mid}/finish")

    client.post(
        f"/retas/{tid}/matches/{mid}/games/{gid}/edit",
        data={"is_tie_break": "true", "tie_break_pair1_points": "5", "tie_break_pair2_points": "7"},
    )
    board = client.standings_board.latest(tid)
    by_id = {s.pair_id: s for s in board}
    assert by_id[y].games_won == 1
    assert by_id[y].points == 7
    assert by_id[x].sets_won == by_id[y].sets_won == 0

    card = client.post(f"/retas/{tid}/matches/{mid}/games/{gid}/delete").json()
    assert card["games"] == []
    assert card["result"]["label"] == "Tie (0-0)"
    # finished match without games contributes nothing
    standings = _standings(client, tid)
    assert standings[x]["matches_played"] == standings[y]["matches_played"] == 0


def test_invalid_scores_are_rejected(client):
    tid, x, y = _setup_two_pairs(client)
    mid = _create_match(client, tid, x, y)

    resp = client.post(f"/retas/{tid}/matches/{mid}/games", data={"pair1_games": "abc", "pair2_games": "1"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_score"

    resp = client.post(f"/retas/{tid}/matches/{mid}/games", data={"pair1_games": "9", "pair2_games": "1"})
    assert resp.status_code == 400

    assert client.get(f"/retas/{tid}/matches/{mid}").json()["games"] == []


def test_pair_rules(client):
    tid = _create_reta(client)
    ids = _create_players(client, "Ana", "Bea", "Carla")

    resp = client.post(f"/retas/{tid}/pairs", data={"player1_id": ids["Ana"], "player2_id": ids["Ana"]})
    assert resp.status_code == 409

    client.post(f"/retas/{tid}/pairs", data={"player1_id": ids["Ana"], "player2_id": ids["Bea"]})
    resp = client.post(f"/retas/{tid}/pairs", data={"player1_id": ids["Carla"], "player2_id": ids["Bea"]})
    assert resp.status_code == 409
    assert resp.json()["code"] == "pair_conflict"

    resp = client.post(f"/retas/{tid}/pairs", data={"player1_id": ids["Carla"], "player2_id": "nobody"})
    assert resp.status_code == 404

    # a player in a pair cannot be deleted, a free one can
    assert client.post(f"/retas/players/{ids['Ana']}/delete").status_code == 409
    assert client.post(f"/retas/players/{ids['Carla']}/delete").status_code == 200
    assert "Carla" not in [p["name"] for p in client.get("/retas/players").json()["players"]]


def test_deleted_pair_drops_its_matches(client):
    tid, x, y = _setup_two_pairs(client)
    mid = _create_match(client, tid, x, y)
    _add_game(client, tid, mid, pair1_games="6", pair2_games="1")
    client.post(f"/retas/{tid}/matches/{mid}/finish")

    client.post(f"/retas/{tid}/pairs/{x}/delete")

    standings = _standings(client, tid)
    assert list(standings) == [y]
    assert standings[y]["matches_played"] == 0


def test_recalculate_republishes(client):
    tid, x, y = _setup_two_pairs(client)
    client.standings_board.invalidate(tid)

    resp = client.post(f"/retas/{tid}/standings/recalculate")
    assert resp.status_code == 200
    assert len(resp.json()["standings"]) == 2
    assert client.standings_board.latest(tid) is not None


def test_unknown_objects_return_404(client):
    assert client.get("/retas/missing").status_code == 404
    assert client.get("/retas/missing/standings").json()["code"] == "tournament_not_found"

    tid, x, y = _setup_two_pairs(client)
    assert client.get(f"/retas/{tid}/matches/nope").status_code == 404
    mid = _create_match(client, tid, x, y)
    other = _create_reta(client, "Other")
    assert client.post(f"/retas/{other}/matches/{mid}/finish").status_code == 404
    resp = client.post(f"/retas/{tid}/matches/{mid}/games/nope/delete")
    assert resp.json()["code"] == "game_not_found"


def test_fetch_failure_returns_previous_standings(client):
    from main import app
    from reta.exceptions import DataFetchFailure
    from reta.router import get_repository

    tid, x, y = _setup_two_pairs(client)
    assert client.standings_board.latest(tid) is not None

    real = get_repository()

    class FlakyRepository:
        async def fetch_tournament(self, tid):
            return await real.fetch_tournament(tid)

        async def fetch_pairs(self, tid):
            return await real.fetch_pairs(tid)

        async def fetch_matches(self, tid):
            raise DataFetchFailure("fetch matches failed")

    app.dependency_overrides[get_repository] = lambda: FlakyRepository()
    resp = client.get(f"/retas/{tid}/standings")

    assert resp.status_code == 503
    body = resp.json()
    assert body["code"] == "data_fetch_failure"
    assert {s["pair_id"] for s in body["standings"]} == {x, y}


def test_view_recomputes_after_changes_elsewhere(client):
    from reta.models import GameScore
    from reta.router import get_repository

    tid, x, y = _setup_two_pairs(client)
    mid = _create_match(client, tid, x, y)
    card = _add_game(client, tid, mid, pair1_games="6", pair2_games="2")
    gid = card["games"][0]["id"]
    client.post(f"/retas/{tid}/matches/{mid}/finish")

    # another worker edits the game; this process's board never hears about it
    other_worker = get_repository()
    client.portal.call(other_worker.edit_game, gid, GameScore(pair1_games=0, pair2_games=6))

    view = client.get(f"/retas/{tid}").json()
    standings = {s["pair_id"]: s for s in view["standings"]}
    result = view["matches"][0]["result"]
    assert view["stale"] is False
    assert standings[x]["points"] == result["pair1_total_points"] == 0
    assert standings[y]["points"] == result["pair2_total_points"] == 6
    assert view["standings"][0]["pair_id"] == y


def test_view_marks_previous_standings_stale_on_fetch_failure(client):
    from main import app
    from reta.exceptions import DataFetchFailure
    from reta.router import get_repository

    tid, x, y = _setup_two_pairs(client)
    real = get_repository()

    class FlakyRepository:
        async def fetch_tournament(self, tid):
            return await real.fetch_tournament(tid)

        async def fetch_pairs(self, tid):
            return await real.fetch_pairs(tid)

        async def fetch_matches(self, tid):
            raise DataFetchFailure("fetch matches failed")

    app.dependency_overrides[get_repository] = lambda: FlakyRepository()
    resp = client.get(f"/retas/{tid}")

    assert resp.status_code == 503
    body = resp.json()
    assert body["stale"] is True
    assert {s["pair_id"] for s in body["standings"]} == {x, y}


def test_players_answer_head(client):
    assert client.head("/retas/players").status_code == 200
