"""
Integration test suite for the tic-tac-toe frame server.

Tests components working together end-to-end:
- Frame routes (splash, how-to-play, game, share, image)
- JSON API (new game, move, errors)
- Statistics store and outcome recording
- Profile lookup against a mocked Airstack endpoint
- Terminal CLI loop
"""

import asyncio
import html
import json
import logging
import random
import re
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from tictactoe.config import Config, Difficulty, SelectorProfile
from tictactoe.core.board import COORDINATES, Mark, make_board
from tictactoe.core.codec import decode_state, encode_state
from tictactoe.core.controller import GameState, Outcome, TurnController
from tictactoe.core.search import MoveSelector
from tictactoe.main import Game
from interface.api import create_app, record_outcome
from interface.cli import parse_move, run
from interface.frame import (
    Frame,
    FrameButton,
    render_board_svg,
    render_frame,
    sample_moves,
    turn_message,
)
from interface.profiles import ProfileClient
from interface.stats import PlayerStats, StatsStore, compute_score

X, O, _ = Mark.X, Mark.O, None

STRICT = SelectorProfile(random_move_chance=0.0, opening_randomized=False, center_chance=1.0)


def airstack_reply(name):
    return {"data": {"Socials": {"Social": [{"profileName": name}]}}}


def profile_client(handler) -> ProfileClient:
    return ProfileClient("https://airstack.test/gql", api_key="k", transport=httpx.MockTransport(handler))


def meta_tags(page: str) -> dict:
    return {k: html.unescape(v) for k, v in re.findall(r'<meta property="([^"]+)" content="([^"]*)">', page)}


def buttons(tags: dict) -> list:
    found = []
    n = 1
    while f"fc:frame:button:{n}" in tags:
        found.append((tags[f"fc:frame:button:{n}"], tags.get(f"fc:frame:button:{n}:action"),
                      tags.get(f"fc:frame:button:{n}:target")))
        n += 1
    return found


def frame_message(tags: dict) -> str:
    query = parse_qs(urlparse(tags["fc:frame:image"]).query)
    return query["message"][0]


def action(state=None, fid=None) -> dict:
    return {"untrustedData": {"fid": fid, "buttonIndex": 1, "state": state}, "trustedData": {"messageBytes": "00"}}


def make_config(tmp_path) -> Config:
    cfg = Config()
    cfg.frame.base_url = "http://testserver"
    cfg.stats.db_path = str(tmp_path / "stats.db")
    return cfg


# ════════════════════════════════════════════════════════════════════════════
#  FRAME ROUTES
# ════════════════════════════════════════════════════════════════════════════


class TestFrameRoutes:
    """Tests the frame endpoints a frame client posts to."""

    @pytest.fixture(autouse=True)
    def setup_client(self, tmp_path):
        self.lookups = []

        def handler(request: httpx.Request):
            self.lookups.append(json.loads(request.content))
            return httpx.Response(200, json=airstack_reply("alice"))

        cfg = make_config(tmp_path)
        selector = MoveSelector({d: STRICT for d in Difficulty}, rng=random.Random(0))
        self.app = create_app(cfg, profiles=profile_client(handler),
                              controller=TurnController(selector), rng=random.Random(0))
        with TestClient(self.app) as client:
            self.client = client
            yield

    def test_splash(self):
        r = self.client.get("/api")
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/html")
        tags = meta_tags(r.text)
        assert tags["fc:frame"] == "vNext"
        assert tags["fc:frame:image:aspect_ratio"] == "1:1"
        assert tags["fc:frame:post_url"] == "http://testserver/api/howtoplay"
        assert [b[0] for b in buttons(tags)] == ["Start"]
        assert tags["og:url"] == "http://testserver/api"

    def test_splash_accepts_post(self):
        assert self.client.post("/api", json=action()).status_code == 200

    def test_howtoplay_offers_difficulties(self):
        tags = meta_tags(self.client.post("/api/howtoplay").text)
        found = buttons(tags)
        assert [b[0] for b in found] == ["Easy", "Medium", "Hard"]
        assert found[0][2] == "http://testserver/api/game?difficulty=easy"

    def test_game_starts_new(self):
        r = self.client.post("/api/game?difficulty=medium", json=action(fid=7))
        tags = meta_tags(r.text)
        state = decode_state(tags["fc:frame:state"])
        assert state.board == (None,) * 9
        assert state.difficulty is Difficulty.MEDIUM
        assert frame_message(tags) == "New game started! Your turn, alice"
        found = buttons(tags)
        assert len(found) == 4
        for label, act, target in found:
            assert act == "post"
            assert label in COORDINATES
            assert target == f"http://testserver/api/game?move={COORDINATES.index(label)}"

    def test_game_without_body(self):
        r = self.client.post("/api/game")
        assert r.status_code == 200
        assert frame_message(meta_tags(r.text)) == "New game started! Your turn, Player"
        assert self.lookups == []

    def test_game_move(self):
        start = meta_tags(self.client.post("/api/game", json=action(fid=7)).text)
        r = self.client.post("/api/game?move=0", json=action(start["fc:frame:state"], fid=7))
        tags = meta_tags(r.text)
        state = decode_state(tags["fc:frame:state"])
        assert state.board[0] is Mark.O
        assert state.board[4] is Mark.X
        assert frame_message(tags) == "alice moved at A1. Computer moved at B2. Your turn, alice."
        labels = [b[0] for b in buttons(tags)]
        assert len(labels) == 4
        assert "A1" not in labels and "B2" not in labels

    def test_lookup_sends_fid(self):
        self.client.post("/api/game", json=action(fid=1234))
        assert self.lookups[0]["variables"] == {"fid": "1234"}

    def test_occupied_spot(self):
        start = meta_tags(self.client.post("/api/game", json=action()).text)
        played = meta_tags(self.client.post("/api/game?move=0", json=action(start["fc:frame:state"])).text)
        r = self.client.post("/api/game?move=0", json=action(played["fc:frame:state"]))
        tags = meta_tags(r.text)
        assert frame_message(tags) == "That spot is already taken! Choose another."
        assert tags["fc:frame:state"] == played["fc:frame:state"]

    @pytest.mark.parametrize("move", [9, -1, 42])
    def test_move_off_the_board(self, move):
        start = meta_tags(self.client.post("/api/game", json=action()).text)
        r = self.client.post(f"/api/game?move={move}", json=action(start["fc:frame:state"]))
        assert r.status_code == 200
        tags = meta_tags(r.text)
        assert frame_message(tags) == "That move is not on the board. Choose another."
        assert tags["fc:frame:state"] == start["fc:frame:state"]


    def test_human_win_records_stats(self):
        token = encode_state(GameState(make_board([O, O, _, X, X, _, _, _, _]), Mark.O,
                                       difficulty=Difficulty.EASY))
        r = self.client.post("/api/game?move=2", json=action(token, fid=42))
        tags = meta_tags(r.text)
        assert frame_message(tags) == "alice wins! Game over."
        found = buttons(tags)
        assert [b[0] for b in found] == ["New Game", "Share Game"]
        assert found[0][2] == "http://testserver/api/game?difficulty=easy"
        assert found[1][2] == "http://testserver/api/share"

        data = self.client.get("/api/stats/42").json()
        assert (data["wins"], data["losses"], data["ties"]) == (1, 0, 0)
        assert data["score"] == 3
        assert data["by_difficulty"]["easy"]["wins"] == 1

    def test_computer_win_message(self):
        token = encode_state(GameState(make_board([O, _, _, X, X, _, _, _, O]), Mark.O))
        tags = meta_tags(self.client.post("/api/game?move=7", json=action(token, fid=9)).text)
        assert frame_message(tags) == "alice moved at C2. Computer moved at B3. Computer wins! Game over."
        data = self.client.get("/api/stats/9").json()
        assert data["losses"] == 1
        assert data["by_difficulty"]["hard"]["losses"] == 1

    def test_draw_message(self):
        token = encode_state(GameState(make_board([X, O, X, X, O, O, O, X, _]), Mark.O))
        tags = meta_tags(self.client.post("/api/game?move=8", json=action(token, fid=5)).text)
        assert frame_message(tags) == "Game over! It's a draw."
        assert self.client.get("/api/stats/5").json()["ties"] == 1

    def test_no_stats_without_fid(self):
        token = encode_state(GameState(make_board([O, O, _, X, X, _, _, _, _]), Mark.O))
        self.client.post("/api/game?move=2", json=action(token))
        assert self.client.get("/api/stats/None").json()["games"] == 0

    def test_move_after_game_over(self):
        token = encode_state(GameState(make_board([O, O, O, X, X, _, _, _, _]), Mark.X, True, Outcome.WIN_HUMAN))
        tags = meta_tags(self.client.post("/api/game?move=5", json=action(token)).text)
        assert frame_message(tags) == "Game is over. Start a new game!"
        assert [b[0] for b in buttons(tags)] == ["New Game", "Share Game"]

    def test_new_game_after_game_over_keeps_difficulty(self):
        token = encode_state(GameState(make_board([O, O, O, X, X, _, _, _, _]), Mark.X, True,
                                       Outcome.WIN_HUMAN, Difficulty.MEDIUM))
        tags = meta_tags(self.client.post("/api/game?difficulty=medium", json=action(token)).text)
        state = decode_state(tags["fc:frame:state"])
        assert not state.is_game_over
        assert state.difficulty is Difficulty.MEDIUM

    def test_bad_token_starts_new_game(self):
        tags = meta_tags(self.client.post("/api/game?move=4", json=action("garbage!!")).text)
        assert decode_state(tags["fc:frame:state"]).board == (None,) * 9
        assert frame_message(tags).startswith("New game started!")

    def test_share_frame(self):
        tags = meta_tags(self.client.post("/api/share").text)
        found = buttons(tags)
        assert found[0] == ("Play Again", "post", "http://testserver/api")
        label, act, target = found[1]
        assert (label, act) == ("Share", "link")
        assert target.startswith("https://warpcast.com/~/compose?")
        assert parse_qs(urlparse(target).query)["embeds[]"] == ["http://testserver/api"]

    def test_image(self):
        token = encode_state(GameState(make_board([O, _, _, _, X, _, _, _, _]), Mark.O))
        r = self.client.get("/api/image", params={"state": token, "message": "Your <turn>"})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("image/svg+xml")
        assert r.text.startswith("<svg")
        assert "Your &lt;turn&gt;" in r.text

    def test_image_bad_token(self):
        assert self.client.get("/api/image", params={"state": "nope"}).status_code == 400


class TestProfileFailures:
    """A failing profile lookup never fails the turn."""

    def _app(self, tmp_path, handler):
        cfg = make_config(tmp_path)
        cfg.stats.enabled = False
        selector = MoveSelector({d: STRICT for d in Difficulty}, rng=random.Random(0))
        return create_app(cfg, profiles=profile_client(handler), controller=TurnController(selector))

    def test_invalid_url_falls_back(self, tmp_path):
        def handler(request):
            raise httpx.InvalidURL("bad url")

        with TestClient(self._app(tmp_path, handler)) as client:
            r = client.post("/api/game", json=action(fid=5))
        assert r.status_code == 200
        assert frame_message(meta_tags(r.text)) == "New game started! Your turn, Player"

    def test_unexpected_error_falls_back(self, tmp_path):
        def handler(request):
            raise RuntimeError("transport exploded")

        with TestClient(self._app(tmp_path, handler)) as client:
            token = meta_tags(client.post("/api/game", json=action(fid=5)).text)["fc:frame:state"]
            r = client.post("/api/game?move=0", json=action(token, fid=5))
        assert r.status_code == 200
        assert frame_message(meta_tags(r.text)).startswith("Player moved at A1.")

    def test_second_start_still_looks_up(self, tmp_path):
        app = self._app(tmp_path, lambda r: httpx.Response(200, json=airstack_reply("carol")))
        for _n in range(2):
            with TestClient(app) as client:
                r = client.post("/api/game", json=action(fid=5))
            assert r.status_code == 200
            assert frame_message(meta_tags(r.text)) == "New game started! Your turn, carol"


# ════════════════════════════════════════════════════════════════════════════
#  JSON API
# ════════════════════════════════════════════════════════════════════════════


class TestJsonAPI:
    """Tests the JSON mirror of the turn cycle."""

    @pytest.fixture(autouse=True)
    def setup_client(self, tmp_path):
        cfg = make_config(tmp_path)
        cfg.stats.enabled = False
        cfg.profile.enabled = False
        selector = MoveSelector({d: STRICT for d in Difficulty}, rng=random.Random(0))
        app = create_app(cfg, controller=TurnController(selector))
        with TestClient(app) as client:
            self.client = client
            yield

    def test_new_game(self):
        data = self.client.post("/api/new", json={"difficulty": "easy"}).json()
        assert data["board"] == [None] * 9
        assert data["current_player"] == "O"
        assert data["difficulty"] == "easy"
        assert data["open_cells"] == list(range(9))

    def test_new_game_no_body(self):
        r = self.client.post("/api/new")
        assert r.status_code == 200
        assert r.json()["difficulty"] is None

    def test_move_without_state(self):
        data = self.client.post("/api/move", json={"move": 0}).json()
        assert data["human_move"] == 0
        assert data["computer_move"] == 4
        assert data["board"][0] == "O" and data["board"][4] == "X"
        assert data["is_game_over"] is False

    def test_full_game_flow(self):
        data = self.client.post("/api/new").json()
        while not data["is_game_over"]:
            r = self.client.post("/api/move", json={"state": data["state"], "move": data["open_cells"][0]})
            assert r.status_code == 200
            data = r.json()
        assert data["outcome"] in {"win_human", "win_computer", "draw"}
        r = self.client.post("/api/move", json={"state": data["state"], "move": 0})
        assert r.status_code == 400

    def test_occupied_returns_400(self):
        data = self.client.post("/api/move", json={"move": 0}).json()
        r = self.client.post("/api/move", json={"state": data["state"], "move": 4})
        assert r.status_code == 400

    @pytest.mark.parametrize("move", [-1, 9])
    def test_out_of_range_returns_400(self, move):
        assert self.client.post("/api/move", json={"move": move}).status_code == 400

    def test_bad_state_returns_400(self):
        assert self.client.post("/api/move", json={"state": "%%%", "move": 1}).status_code == 400

    def test_stats_disabled(self):
        assert self.client.get("/api/stats/1").status_code == 503


# ════════════════════════════════════════════════════════════════════════════
#  STATISTICS STORE
# ════════════════════════════════════════════════════════════════════════════


class TestStatsStore:
    def test_record_and_aggregate(self, tmp_path):
        store = StatsStore(str(tmp_path / "nested" / "stats.db"))

        async def scenario():
            await store.init()
            await store.record("1", Outcome.WIN_HUMAN, Difficulty.EASY)
            await store.record("1", Outcome.WIN_HUMAN, Difficulty.HARD)
            await store.record("1", Outcome.WIN_COMPUTER, Difficulty.HARD)
            await store.record("1", Outcome.DRAW, Difficulty.MEDIUM)
            await store.record("2", Outcome.DRAW, Difficulty.EASY)
            return await store.get("1"), await store.get_by_difficulty("1"), await store.get("3")

        totals, per_tier, empty = asyncio.run(scenario())
        assert totals == PlayerStats(wins=2, losses=1, ties=1)
        assert per_tier[Difficulty.HARD] == PlayerStats(1, 1, 0)
        assert per_tier[Difficulty.EASY] == PlayerStats(1, 0, 0)
        assert per_tier[Difficulty.MEDIUM] == PlayerStats(0, 0, 1)
        assert empty == PlayerStats()

    def test_init_is_repeatable(self, tmp_path):
        store = StatsStore(str(tmp_path / "stats.db"))

        async def scenario():
            await store.init()
            await store.record(5, "draw", "easy")
            await store.init()
            return await store.get(5)

        assert asyncio.run(scenario()).ties == 1

    def test_compute_score(self):
        assert compute_score(PlayerStats()) == 0
        assert compute_score(PlayerStats(wins=2, losses=5, ties=1)) == 7
        assert PlayerStats(1, 2, 3).games == 6

    def test_failed_write_is_logged(self, tmp_path, caplog):
        store = StatsStore(str(tmp_path / "uninitialized.db"))
        state = GameState(make_board([O, O, O, X, X, _, _, _, _]), Mark.X, True, Outcome.WIN_HUMAN)
        asyncio.run(record_outcome(store, 1, state, Difficulty.HARD))
        assert "Could not record" in caplog.text


# ════════════════════════════════════════════════════════════════════════════
#  PROFILE LOOKUP
# ════════════════════════════════════════════════════════════════════════════


class TestProfileClient:
    def _lookup(self, handler, fid="99"):
        client = profile_client(handler)

        async def scenario():
            try:
                return await client.get_username(fid)
            finally:
                await client.aclose()

        return asyncio.run(scenario())

    def test_returns_profile_name(self):
        def handler(request):
            assert request.headers["Authorization"] == "k"
            assert json.loads(request.content)["variables"]["fid"] == "99"
            return httpx.Response(200, json=airstack_reply("bob"))

        assert self._lookup(handler) == "bob"

    def test_server_error_gives_default(self):
        assert self._lookup(lambda r: httpx.Response(500, text="boom")) == "Player"

    def test_network_error_gives_default(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert self._lookup(handler) == "Player"

    def test_invalid_url_gives_default(self, caplog):
        def handler(request):
            raise httpx.InvalidURL("no host")

        with caplog.at_level(logging.ERROR, logger="interface.profiles"):
            assert self._lookup(handler) == "Player"
        assert "fid 99" in caplog.text

    def test_reopens_after_close(self):
        client = profile_client(lambda r: httpx.Response(200, json=airstack_reply("dave")))

        async def scenario():
            names = []
            for _n in range(2):
                await client.open()
                names.append(await client.get_username(3))
                await client.aclose()
            names.append(await client.get_username(3))
            await client.aclose()
            return names

        assert asyncio.run(scenario()) == ["dave", "dave", "dave"]

    def test_non_json_gives_default(self):
        assert self._lookup(lambda r: httpx.Response(200, text="<html>")) == "Player"

    @pytest.mark.parametrize("body", [
        {},
        {"data": None},
        {"data": {"Socials": {"Social": []}}},
        {"data": {"Socials": {"Social": None}}},
        {"data": {"Socials": {"Social": [{"profileName": ""}]}}},
        {"data": {"Socials": {"Social": [{"profileName": None}]}}},
    ])
    def test_unexpected_shape_gives_default(self, body):
        assert self._lookup(lambda r: httpx.Response(200, json=body)) == "Player"

    def test_missing_fid_skips_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert self._lookup(handler, fid=None) == "Player"

    def test_disabled_client(self):
        client = ProfileClient("https://airstack.test/gql", enabled=False,
                               transport=httpx.MockTransport(lambda r: httpx.Response(200, json=airstack_reply("x"))))

        async def scenario():
            try:
                return await client.get_username(1)
            finally:
                await client.aclose()

        assert asyncio.run(scenario()) == "Player"


# ════════════════════════════════════════════════════════════════════════════
#  FRAME RENDERING
# ════════════════════════════════════════════════════════════════════════════


class TestFrameRendering:
    def test_render_escapes_values(self):
        page = render_frame(Frame(image="http://x/i?a=1&b=2", post_url="http://x/p",
                                  buttons=[FrameButton('Say "hi"')]))
        assert 'content="http://x/i?a=1&amp;b=2"' in page
        assert meta_tags(page)["fc:frame:button:1"] == 'Say "hi"'

    def test_too_many_buttons(self):
        with pytest.raises(ValueError):
            render_frame(Frame(image="i", post_url="p", buttons=[FrameButton(str(n)) for n in range(5)]))

    def test_sample_moves_limits(self):
        rng = random.Random(4)
        picked = sample_moves([0, 2, 5, 6, 8], 4, rng)
        assert len(picked) == 4
        assert set(picked) <= {0, 2, 5, 6, 8}
        assert sorted(sample_moves([3, 7], 4, rng)) == [3, 7]

    def test_board_svg_draws_marks(self):
        svg = render_board_svg(make_board([X, _, _, _, O, _, _, _, _]), "hello", 1080)
        assert svg.count("<rect") >= 10
        assert ">X</text>" in svg and ">O</text>" in svg
        assert "hello" in svg

    def test_turn_message_mid_game(self):
        ctl = TurnController(MoveSelector({d: STRICT for d in Difficulty}))
        result = ctl.play(ctl.new_game(), 8)
        assert turn_message("eve", result) == "eve moved at C3. Computer moved at B2. Your turn, eve."


# ════════════════════════════════════════════════════════════════════════════
#  TERMINAL CLI
# ════════════════════════════════════════════════════════════════════════════


class TestCLI:
    def test_parse_move(self):
        assert parse_move("b2") == 4
        assert parse_move(" C3 ") == 8
        assert parse_move("0") == 0
        assert parse_move("9") is None
        assert parse_move("hello") is None

    def test_plays_to_the_end(self, capsys):
        game = Game(Difficulty.EASY, seed=8)
        with patch("builtins.input", side_effect=lambda prompt: str(game.open_cells()[0])):
            outcome = run(game)
        assert outcome in set(Outcome)
        assert "Game Over" in capsys.readouterr().out

    def test_reprompts_then_quits(self, capsys):
        game = Game(seed=1)
        with patch("builtins.input", side_effect=["zz", "9", "q"]):
            assert run(game) is None
        out = capsys.readouterr().out
        assert out.count("Unrecognized move") == 2
        assert "already taken" not in out
        assert game.state.board == (None,) * 9

    def test_occupied_cell_reprompts(self, capsys):
        game = Game(seed=1)
        with patch("builtins.input", side_effect=["B2", "B2", "quit"]):
            run(game)
        assert "That spot is already taken! Choose another." in capsys.readouterr().out
