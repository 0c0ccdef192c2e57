"""FastAPI frame server for the game, plus a small JSON API."""

import logging
import random
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
from urllib.parse import urlencode

import aiosqlite
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from tictactoe.config import CONFIG, Config, Difficulty
from tictactoe.core.board import SIZE, open_cells
from tictactoe.core.codec import decode_state, encode_state
from tictactoe.core.controller import GameState, TurnController
from tictactoe.core.errors import GameOverError, IllegalMoveError, InvalidStateToken
from tictactoe.core.search import MoveSelector
from tictactoe.core.utils import setup_logging
from interface.frame import (
    Frame,
    FrameButton,
    game_over_message,
    image_url,
    move_buttons,
    new_game_message,
    off_board_message,
    render_board_svg,
    render_frame,
    sample_moves,
    spot_taken_message,
    turn_message,
)
from interface.profiles import ProfileClient
from interface.stats import StatsStore, compute_score

logger = logging.getLogger(__name__)


class FrameActionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    fid: Optional[int] = None
    buttonIndex: Optional[int] = None
    state: Optional[str] = None


class FrameAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    untrustedData: FrameActionData = Field(default_factory=FrameActionData)
    trustedData: Optional[Dict] = None


class NewGameRequest(BaseModel):
    difficulty: Optional[Difficulty] = None


class MoveRequest(BaseModel):
    move: int
    state: Optional[str] = None  # token from a previous response; omitted starts a new game
    difficulty: Optional[Difficulty] = None


class GameResponse(BaseModel):
    state: str
    board: List[Optional[str]]
    current_player: str
    is_game_over: bool
    outcome: Optional[str] = None
    difficulty: Optional[str] = None
    human_move: Optional[int] = None
    computer_move: Optional[int] = None
    open_cells: List[int]


def _game_response(state: GameState, human_move=None, computer_move=None) -> GameResponse:
    return GameResponse(
        state=encode_state(state),
        board=[c.value if c else None for c in state.board],
        current_player=state.current_player.value,
        is_game_over=state.is_game_over,
        outcome=state.outcome.value if state.outcome else None,
        difficulty=state.difficulty.value if state.difficulty else None,
        human_move=human_move,
        computer_move=computer_move,
        open_cells=open_cells(state.board),
    )


def get_controller(request: Request) -> TurnController:
    return request.app.state.controller


def get_stats(request: Request) -> Optional[StatsStore]:
    return request.app.state.stats


def get_profiles(request: Request) -> ProfileClient:
    return request.app.state.profiles


async def record_outcome(stats: StatsStore, fid, state: GameState, default: Difficulty):
    """Background task; a failed write is logged and dropped."""
    try:
        await stats.record(fid, state.outcome, state.difficulty or default)
    except (aiosqlite.Error, OSError) as e:
        logger.error("Could not record %s for fid %s: %s", state.outcome.value, fid, e)


def create_app(cfg: Config = CONFIG, stats: Optional[StatsStore] = None,
               profiles: Optional[ProfileClient] = None,
               controller: Optional[TurnController] = None,
               rng: Optional[random.Random] = None) -> FastAPI:
    """Build the app with its collaborators; missing ones are created from ``cfg``."""
    setup_logging(cfg.log_level)

    if stats is None and cfg.stats.enabled:
        stats = StatsStore(cfg.stats.db_path)
    if profiles is None:
        profiles = ProfileClient.from_config(cfg.profile)
    if controller is None:
        controller = TurnController(MoveSelector(cfg.selector.profiles(), rng=rng),
                                    cfg.game.human_mark, cfg.game.computer_mark)
    button_rng = rng or random.Random()
    default_difficulty = Difficulty(cfg.game.default_difficulty)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.stats is not None:
            await app.state.stats.init()
        await app.state.profiles.open()
        try:
            yield
        finally:
            await app.state.profiles.aclose()

    app = FastAPI(title=cfg.frame.title, version="1.0.0", lifespan=lifespan)
    app.state.stats = stats
    app.state.profiles = profiles
    app.state.controller = controller

    base = cfg.frame.base_path.rstrip("/")
    public = cfg.frame.base_url.rstrip("/") + base
    game_url = f"{public}/game"
    share_url = f"{public}/share"
    size = cfg.frame.image_size

    def _html(frame: Frame) -> HTMLResponse:
        frame.title = cfg.frame.title
        return HTMLResponse(render_frame(frame))

    def _blank_image(message: str) -> str:
        return image_url(public, encode_state(controller.new_game()), message)

    # ── frames ──────────────────────────────────────────────────────────────

    @app.api_route(base or "/", methods=["GET", "POST"], response_class=HTMLResponse)
    def splash_frame():
        image = cfg.frame.splash_image_url or _blank_image("Tic-Tac-Toe")
        return _html(Frame(
            image=image,
            post_url=f"{public}/howtoplay",
            buttons=[FrameButton("Start")],
            og_description="Start New Game or Share!",
            og_url=public,
        ))

    @app.api_route(f"{base}/howtoplay", methods=["GET", "POST"], response_class=HTMLResponse)
    def howtoplay_frame():
        image = cfg.frame.howto_image_url or _blank_image(
            f"Get three in a row to win. You play {cfg.game.human_mark}, the computer plays "
            f"{cfg.game.computer_mark}. Pick a difficulty to start."
        )
        buttons = [
            FrameButton(d.value.capitalize(), target=f"{game_url}?{urlencode({'difficulty': d.value})}")
            for d in Difficulty
        ]
        return _html(Frame(image=image, post_url=game_url, buttons=buttons))

    @app.post(f"{base}/game", response_class=HTMLResponse)
    async def game_frame(
        background_tasks: BackgroundTasks,
        move: Optional[int] = None,
        difficulty: Optional[Difficulty] = None,
        action: Optional[FrameAction] = None,
        controller: TurnController = Depends(get_controller),
        stats: Optional[StatsStore] = Depends(get_stats),
        profiles: ProfileClient = Depends(get_profiles),
    ):
        data = action.untrustedData if action else FrameActionData()
        name = await profiles.get_username(data.fid)

        state = None
        if data.state:
            try:
                state = decode_state(data.state, controller.human, controller.computer)
            except InvalidStateToken as e:
                logger.warning("Starting a new game, bad state token: %s", e)

        if state is None or move is None:
            keep = difficulty or (state.difficulty if state else None)
            state = controller.new_game(keep)
            message = new_game_message(name)
        else:
            try:
                result = controller.play(state, move)
            except GameOverError:
                message = game_over_message()
            except IllegalMoveError:
                message = spot_taken_message() if 0 <= move < SIZE else off_board_message()
            else:
                state = result.state
                message = turn_message(name, result)
                if state.is_game_over and stats is not None and data.fid is not None:
                    background_tasks.add_task(record_outcome, stats, data.fid, state, default_difficulty)

        token = encode_state(state)
        if state.is_game_over:
            again = {"difficulty": state.difficulty.value} if state.difficulty else {}
            target = f"{game_url}?{urlencode(again)}" if again else game_url
            buttons = [FrameButton("New Game", target=target),
                       FrameButton("Share Game", target=share_url)]
        else:
            shown = sample_moves(open_cells(state.board), cfg.game.max_move_buttons, button_rng)
            buttons = move_buttons(shown, game_url)

        return _html(Frame(
            image=image_url(public, token, message),
            post_url=game_url,
            buttons=buttons,
            state=token,
        ))

    @app.post(f"{base}/share", response_class=HTMLResponse)
    def share_frame():
        compose = f"{cfg.frame.share_compose_url}?{urlencode({'text': cfg.frame.share_text, 'embeds[]': public})}"
        return _html(Frame(
            image=_blank_image("Thanks for Playing!"),
            post_url=public,
            buttons=[FrameButton("Play Again", target=public),
                     FrameButton("Share", action="link", target=compose)],
        ))

    @app.get(f"{base}/image")
    def board_image(state: str, message: str = ""):
        try:
            game = decode_state(state, controller.human, controller.computer)
        except InvalidStateToken as e:
            raise HTTPException(status_code=400, detail=str(e))
        return Response(render_board_svg(game.board, message, size), media_type="image/svg+xml",
                        headers={"Cache-Control": "max-age=0"})

    # ── JSON API ────────────────────────────────────────────────────────────

    @app.post(f"{base}/new", response_model=GameResponse)
    def new_game(req: NewGameRequest = NewGameRequest(),
                 controller: TurnController = Depends(get_controller)):
        return _game_response(controller.new_game(req.difficulty))

    @app.post(f"{base}/move", response_model=GameResponse)
    def make_move(req: MoveRequest, controller: TurnController = Depends(get_controller)):
        if req.state:
            try:
                state = decode_state(req.state, controller.human, controller.computer)
            except InvalidStateToken as e:
                raise HTTPException(status_code=400, detail=str(e))
        else:
            state = controller.new_game(req.difficulty)
        try:
            result = controller.play(state, req.move)
        except GameOverError:
            raise HTTPException(status_code=400, detail="Game is already over")
        except IllegalMoveError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _game_response(result.state, result.human_move, result.computer_move)

    @app.get(f"{base}/stats/{{fid}}")
    async def player_stats(fid: str, stats: Optional[StatsStore] = Depends(get_stats)):
        if stats is None:
            raise HTTPException(status_code=503, detail="Statistics are disabled")
        totals = await stats.get(fid)
        per_tier = await stats.get_by_difficulty(fid)
        return {
            "fid": fid,
            "wins": totals.wins,
            "losses": totals.losses,
            "ties": totals.ties,
            "games": totals.games,
            "score": compute_score(totals),
            "by_difficulty": {
                d.value: {"wins": s.wins, "losses": s.losses, "ties": s.ties}
                for d, s in per_tier.items()
            },
        }

    return app


app = create_app()
