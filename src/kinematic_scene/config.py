"""
Editor configuration and defaults.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .util.logger import setup_logger


@dataclass
class EditorConfig:
    """Settings shared by the document engine and the robot-description export."""

    # Undo depth; None keeps every record
    history_limit: Optional[int] = 256

    # Translation added to a duplicated subtree root
    duplicate_offset: Tuple[float, float, float] = (0.4, 0.0, 0.2)

    # Export formatting
    number_precision: int = 6
    default_robot_name: str = "robot"

    log_level: str = "info"


# Global config instance
CONFIG = EditorConfig()


def configure_logging(config: EditorConfig = CONFIG):
    """Apply ``config.log_level`` to the package logger."""
    return setup_logger(config.log_level)
