import argparse
from typing import Optional

from tictactoe.config import CONFIG, Difficulty
from tictactoe.core.board import COORDINATES
from tictactoe.core.errors import IllegalMoveError
from tictactoe.core.utils import setup_logging
from tictactoe.main import Game
from interface.frame import turn_message


def parse_move(text: str) -> Optional[int]:
    """Accept a coordinate like 'B2' or a cell index '4'; None if neither."""
    text = text.strip().upper()
    if text in COORDINATES:
        return COORDINATES.index(text)
    if text.isdigit() and int(text) < len(COORDINATES):
        return int(text)
    return None


def run(game: Game, name: str = "You"):
    while not game.is_over():
        game.print_board()
        print("----------------------------")
        user_move = input("Enter your move (A1..C3 or 0..8, q to quit): ")
        if user_move.strip().lower() in ("q", "quit"):
            print("Bye.")
            return None
        index = parse_move(user_move)
        if index is None:
            print("Unrecognized move, try again.")
            continue
        try:
            result = game.play(index)
        except IllegalMoveError:
            print("That spot is already taken! Choose another.")
            continue
        print(turn_message(name, result))

    game.print_board()
    print("Game Over")
    print(f"Result: {game.state.outcome.value}")
    return game.state.outcome


def main(argv=None):
    parser = argparse.ArgumentParser(description="Play tic-tac-toe against the computer.")
    parser.add_argument("--difficulty", choices=[d.value for d in Difficulty],
                        default=CONFIG.game.default_difficulty)
    parser.add_argument("--seed", type=int, default=None, help="seed the computer's random choices")
    args = parser.parse_args(argv)
    setup_logging(CONFIG.log_level)
    run(Game(Difficulty(args.difficulty), seed=args.seed))


if __name__ == "__main__":
    main()
