# tictactoe/config.py
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, Any
import logging
import os
import tomllib

logger = logging.getLogger(__name__)

# Chance that the hard tier still plays a random cell. Kept above zero so the
# game stays winnable; set it to 0.0 for a fully strategic hard mode.
HARD_MISTAKE_CHANCE = 0.2

# Chance of taking the open center once no win or block exists.
CENTER_CHANCE = 0.7


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass(frozen=True)
class SelectorProfile:
    random_move_chance: float = 0.0
    opening_randomized: bool = True
    center_chance: float = CENTER_CHANCE


@dataclass
class SelectorConfig:
    easy: SelectorProfile = field(default_factory=lambda: SelectorProfile(random_move_chance=0.5))
    medium: SelectorProfile = field(default_factory=lambda: SelectorProfile(random_move_chance=0.3))
    hard: SelectorProfile = field(default_factory=lambda: SelectorProfile(random_move_chance=HARD_MISTAKE_CHANCE))

    def profiles(self) -> Dict[Difficulty, SelectorProfile]:
        return {d: getattr(self, d.value) for d in Difficulty}


@dataclass
class GameConfig:
    human_mark: str = "O"
    computer_mark: str = "X"
    default_difficulty: str = Difficulty.HARD.value
    max_move_buttons: int = 4  # frames show at most 4 buttons


@dataclass
class FrameConfig:
    title: str = "Tic-Tac-Toe Game"
    base_url: str = "http://localhost:8000"
    base_path: str = "/api"
    image_size: int = 1080
    splash_image_url: str = ""
    howto_image_url: str = ""
    share_text: str = "Think you can win a game of Tic-Tac-Toe?"
    share_compose_url: str = "https://warpcast.com/~/compose"


@dataclass
class ProfileConfig:
    enabled: bool = True
    api_url: str = "https://api.airstack.xyz/gql"
    api_key: str = ""
    timeout_s: float = 5.0
    default_name: str = "Player"


@dataclass
class StatsConfig:
    enabled: bool = True
    db_path: str = "data/stats.db"


@dataclass
class Config:
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    game: GameConfig = field(default_factory=GameConfig)
    frame: FrameConfig = field(default_factory=FrameConfig)
    profile: ProfileConfig = field(default_factory=ProfileConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)
    log_level: str = "INFO"

    @staticmethod
    def load_from_toml(path: str = "config.toml") -> "Config":
        cfg = Config()
        if not os.path.exists(path):
            return cfg
        with open(path, "rb") as f:
            raw = tomllib.load(f)
        return cfg.merge(raw)

    def merge(self, raw: Dict[str, Any]) -> "Config":
        """Copy known keys from a parsed TOML mapping; unknown keys are ignored."""
        for section in ("game", "frame", "profile", "stats"):
            if section in raw:
                target = getattr(self, section)
                for k, v in raw[section].items():
                    if hasattr(target, k):
                        setattr(target, k, v)
        if "selector" in raw:
            for tier, values in raw["selector"].items():
                if not hasattr(self.selector, tier) or not isinstance(values, dict):
                    continue
                known = {f.name for f in fields(SelectorProfile)}
                current = getattr(self.selector, tier)
                merged = {f: values.get(f, getattr(current, f)) for f in known}
                setattr(self.selector, tier, SelectorProfile(**merged))
        if "log_level" in raw:
            self.log_level = raw["log_level"]
        return self

    def apply_env(self, env=os.environ) -> "Config":
        if env.get("AIRSTACK_API_KEY"):
            self.profile.api_key = env["AIRSTACK_API_KEY"]
        if env.get("TTT_BASE_URL"):
            self.frame.base_url = env["TTT_BASE_URL"].rstrip("/")
        if env.get("TTT_STATS_DB"):
            self.stats.db_path = env["TTT_STATS_DB"]
        if env.get("TTT_LOG_LEVEL"):
            self.log_level = env["TTT_LOG_LEVEL"].upper()
        override = env.get("TTT_HARD_MISTAKE_CHANCE")
        if override:
            try:
                chance = float(override)
            except ValueError:
                logger.warning("Ignoring TTT_HARD_MISTAKE_CHANCE=%r: not a number", override)
            else:
                hard = self.selector.hard
                self.selector.hard = SelectorProfile(chance, hard.opening_randomized, hard.center_chance)
        return self


# single globally importable config instance
CONFIG = Config.load_from_toml(os.environ.get("TTT_CONFIG_TOML", "config.toml")).apply_env()
