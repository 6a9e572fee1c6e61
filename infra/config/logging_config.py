from __future__ import annotations

from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    """
    Controls basic logging behaviour.

    Interacts with infra.logging_setup.init_logging().
    """

    name: str = Field(
        "backtester",
        description="Run name; used as log file prefix and CLI logger name.",
    )
    level: str = Field(
        "INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR.",
    )
    log_dir: str = Field(
        "logs",
        description="Directory for log files.",
    )
    to_console: bool = True
    to_file: bool = True
