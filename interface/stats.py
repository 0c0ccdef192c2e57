"""Win/loss/tie statistics per player, stored in SQLite."""

import logging
import os
from dataclasses import dataclass
from typing import Dict

import aiosqlite

from tictactoe.config import Difficulty
from tictactoe.core.controller import Outcome

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS player_stats (
        fid TEXT NOT NULL,
        difficulty TEXT NOT NULL,
        wins INTEGER DEFAULT 0,
        losses INTEGER DEFAULT 0,
        ties INTEGER DEFAULT 0,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (fid, difficulty)
    );
"""

# outcome as seen by the human player -> column
OUTCOME_COLUMNS = {
    Outcome.WIN_HUMAN: "wins",
    Outcome.WIN_COMPUTER: "losses",
    Outcome.DRAW: "ties",
}


@dataclass
class PlayerStats:
    wins: int = 0
    losses: int = 0
    ties: int = 0

    @property
    def games(self) -> int:
        return self.wins + self.losses + self.ties


def compute_score(stats: PlayerStats) -> int:
    """Three points per win, one per tie; losses cost nothing."""
    return 3 * stats.wins + stats.ties


class StatsStore:
    def __init__(self, db_path: str):
        self.db_path = db_path

    async def init(self):
        if self.db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.executescript(SCHEMA)
            await db.commit()

    async def record(self, fid, outcome: Outcome, difficulty: Difficulty):
        column = OUTCOME_COLUMNS[Outcome(outcome)]
        difficulty = Difficulty(difficulty)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                f"""
                INSERT INTO player_stats (fid, difficulty, {column}) VALUES (?, ?, 1)
                ON CONFLICT(fid, difficulty)
                DO UPDATE SET {column} = {column} + 1, updated_at = CURRENT_TIMESTAMP
                """,
                (str(fid), difficulty.value),
            )
            await db.commit()
        logger.debug("recorded %s for fid %s (%s)", column, fid, difficulty.value)

    async def get(self, fid) -> PlayerStats:
        """Totals across every difficulty."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT COALESCE(SUM(wins), 0), COALESCE(SUM(losses), 0), COALESCE(SUM(ties), 0) "
                "FROM player_stats WHERE fid = ?",
                (str(fid),),
            )
            row = await cursor.fetchone()
        return PlayerStats(*row)

    async def get_by_difficulty(self, fid) -> Dict[Difficulty, PlayerStats]:
        result = {d: PlayerStats() for d in Difficulty}
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT difficulty, wins, losses, ties FROM player_stats WHERE fid = ?",
                (str(fid),),
            )
            rows = await cursor.fetchall()
        for row in rows:
            try:
                diff = Difficulty(row["difficulty"])
            except ValueError:
                continue
            result[diff] = PlayerStats(row["wins"], row["losses"], row["ties"])
        return result
