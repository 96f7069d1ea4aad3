"""
BaseStage — one step of turning report data into a PDF.

The transform and compose steps share this wrapper: it times the step,
keeps a StageLog the pipeline copies into its job summary, and separates
generation errors (bad report id, unsupported document, impossible
layout) from unexpected failures when logging.  Chart and branding
problems never get this far; stages report them through `_warn`.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from engine.errors import DocumentGenerationError

logger = logging.getLogger(__name__)


@dataclass
class StageLog:
    stage_name: str = ""
    status: str = "pending"          # pending | running | success | error
    duration_seconds: float = 0.0
    messages: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        entry = asdict(self)
        entry["stage"] = entry.pop("stage_name")
        entry["duration"] = entry.pop("duration_seconds")
        return entry


class BaseStage(ABC):
    name: str = "BaseStage"

    def __init__(self) -> None:
        self.log = StageLog(stage_name=self.name)

    def run(self, input_data: Any) -> Any:
        """Run `_execute` once, recording duration and outcome in `self.log`."""
        self.log = StageLog(stage_name=self.name, status="running")
        start = time.perf_counter()
        try:
            result = self._execute(input_data)
        except DocumentGenerationError as exc:
            self._fail(exc)
            logger.error("[%s] %s", self.name, exc)
            raise
        except Exception as exc:
            self._fail(exc)
            logger.exception("[%s] unexpected failure", self.name)
            raise
        finally:
            self.log.duration_seconds = round(time.perf_counter() - start, 3)
        self.log.status = "success"
        logger.info("[%s] done in %.2fs", self.name, self.log.duration_seconds)
        return result

    @abstractmethod
    def _execute(self, input_data: Any) -> Any:
        ...

    def _fail(self, exc: Exception) -> None:
        self.log.status = "error"
        self.log.errors.append(f"{type(exc).__name__}: {exc}")

    def _log(self, message: str) -> None:
        self.log.messages.append(message)
        logger.info("[%s] %s", self.name, message)

    def _warn(self, message: str) -> None:
        self.log.warnings.append(message)
        logger.warning("[%s] %s", self.name, message)

    def _record(self, **metadata: Any) -> None:
        self.log.metadata.update(metadata)
