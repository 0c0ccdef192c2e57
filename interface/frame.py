"""Frame responses: meta-tag HTML, button layout, turn messages and the board image."""

import html
import random
import textwrap
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from urllib.parse import urlencode

from tictactoe.core.board import Board, COORDINATES
from tictactoe.core.controller import Outcome, TurnResult

MAX_BUTTONS = 4


@dataclass
class FrameButton:
    label: str
    action: str = "post"  # post | link
    target: Optional[str] = None


@dataclass
class Frame:
    image: str
    post_url: str
    buttons: List[FrameButton] = field(default_factory=list)
    title: str = "Tic-Tac-Toe Game"
    state: Optional[str] = None
    aspect_ratio: str = "1:1"
    og_description: Optional[str] = None
    og_url: Optional[str] = None


def render_frame(frame: Frame) -> str:
    """Serialize a frame into the HTML document a frame client reads."""
    if len(frame.buttons) > MAX_BUTTONS:
        raise ValueError(f"A frame holds at most {MAX_BUTTONS} buttons, got {len(frame.buttons)}")
    e = html.escape
    tags = [
        ("fc:frame", "vNext"),
        ("fc:frame:image", frame.image),
        ("fc:frame:image:aspect_ratio", frame.aspect_ratio),
        ("fc:frame:post_url", frame.post_url),
    ]
    for n, button in enumerate(frame.buttons, start=1):
        tags.append((f"fc:frame:button:{n}", button.label))
        tags.append((f"fc:frame:button:{n}:action", button.action))
        if button.target:
            tags.append((f"fc:frame:button:{n}:target", button.target))
    if frame.state:
        tags.append(("fc:frame:state", frame.state))
    tags.append(("og:title", frame.title))
    tags.append(("og:image", frame.image))
    if frame.og_description:
        tags.append(("og:description", frame.og_description))
    if frame.og_url:
        tags.append(("og:url", frame.og_url))
        tags.append(("og:type", "website"))

    meta = "\n".join(f'    <meta property="{e(k)}" content="{e(v)}">' for k, v in tags)
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "  <head>\n"
        '    <meta charset="utf-8">\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"    <title>{e(frame.title)}</title>\n"
        f"{meta}\n"
        "  </head>\n"
        "  <body></body>\n"
        "</html>\n"
    )


def sample_moves(cells: Sequence[int], limit: int = MAX_BUTTONS, rng: Optional[random.Random] = None) -> List[int]:
    """Up to ``limit`` open cells in random order."""
    rng = rng or random
    return rng.sample(list(cells), min(limit, len(cells)))


def move_buttons(cells: Sequence[int], game_url: str) -> List[FrameButton]:
    return [FrameButton(COORDINATES[i], target=f"{game_url}?{urlencode({'move': i})}") for i in cells]


def image_url(base: str, state_token: str, message: str) -> str:
    return f"{base}/image?{urlencode({'state': state_token, 'message': message})}"


# ── messages ────────────────────────────────────────────────────────────────

def new_game_message(name: str) -> str:
    return f"New game started! Your turn, {name}"


def game_over_message() -> str:
    return "Game is over. Start a new game!"


def spot_taken_message() -> str:
    return "That spot is already taken! Choose another."


def off_board_message() -> str:
    return "That move is not on the board. Choose another."


def turn_message(name: str, result: TurnResult) -> str:
    message = f"{name} moved at {COORDINATES[result.human_move]}."
    if result.computer_move is None:
        if result.outcome is Outcome.WIN_HUMAN:
            return f"{name} wins! Game over."
        if result.outcome is Outcome.DRAW:
            return "Game over! It's a draw."
        return message

    message += f" Computer moved at {COORDINATES[result.computer_move]}."
    if result.outcome is Outcome.WIN_COMPUTER:
        message += " Computer wins! Game over."
    elif result.outcome is Outcome.DRAW:
        message += " It's a draw. Game over."
    else:
        message += f" Your turn, {name}."
    return message


# ── board image ─────────────────────────────────────────────────────────────

CELL = 200
GAP = 20


def render_board_svg(board: Board, message: str = "", size: int = 1080) -> str:
    """Square SVG with the 3x3 grid and the message panel below it."""
    e = html.escape
    grid = 3 * CELL + 2 * GAP
    left = (size - grid) // 2
    top = 120
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" viewBox="0 0 {size} {size}">',
        "<defs><linearGradient id=\"cell\" x1=\"0\" y1=\"0\" x2=\"1\" y2=\"1\">"
        '<stop offset="0%" stop-color="#0F0F2F"/><stop offset="100%" stop-color="#303095"/>'
        "</linearGradient></defs>",
        f'<rect width="{size}" height="{size}" fill="#14142b"/>',
    ]
    for index, cell in enumerate(board):
        row, col = divmod(index, 3)
        x = left + col * (CELL + GAP)
        y = top + row * (CELL + GAP)
        parts.append(f'<rect x="{x}" y="{y}" width="{CELL}" height="{CELL}" fill="url(#cell)" '
                     'stroke="black" stroke-width="4"/>')
        if cell is not None:
            parts.append(f'<text x="{x + CELL // 2}" y="{y + CELL // 2}" font-family="Arial, sans-serif" '
                         'font-size="120" fill="white" text-anchor="middle" dominant-baseline="central">'
                         f"{cell.value}</text>")

    if message:
        lines = textwrap.wrap(message, width=40)[:4]
        panel_y = top + grid + 40
        panel_h = 40 + 48 * len(lines)
        parts.append(f'<rect x="{(size - 900) // 2}" y="{panel_y}" width="900" height="{panel_h}" rx="10" '
                     'fill="white" fill-opacity="0.7"/>')
        for n, line in enumerate(lines):
            parts.append(f'<text x="{size // 2}" y="{panel_y + 56 + 48 * n}" font-family="Arial, sans-serif" '
                         f'font-size="36" fill="black" text-anchor="middle">{e(line)}</text>')
    parts.append("</svg>")
    return "\n".join(parts)
