import logging
from typing import Protocol

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class InvocationOutcome(BaseModel):
    alias: str
    operation: str
    success: bool
    duration: float
    error: str | None = None

    model_config = ConfigDict(frozen=True)


class StatusSink(Protocol):
    """Receives deployment progress. Exceptions raised by `record` are logged and dropped."""

    def status(self, phase: str, alias: str | None = None) -> None: ...

    def debug(self, message: str) -> None: ...

    def record(self, outcome: InvocationOutcome) -> None: ...


class LoggingStatusSink:
    """Reports deployment progress through the standard `logging` module."""

    def __init__(self, logger: logging.Logger = logger) -> None:
        self.logger = logger

    def status(self, phase: str, alias: str | None = None) -> None:
        if alias is None:
            self.logger.info("%s", phase)
        else:
            self.logger.info("%s '%s'", phase, alias)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def record(self, outcome: InvocationOutcome) -> None:
        if outcome.success:
            self.logger.debug(
                "Operation '%s' of '%s' succeeded in %.3fs.",
                outcome.operation,
                outcome.alias,
                outcome.duration,
            )
        else:
            self.logger.warning(
                "Operation '%s' of '%s' failed after %.3fs: %s",
                outcome.operation,
                outcome.alias,
                outcome.duration,
                outcome.error,
            )
