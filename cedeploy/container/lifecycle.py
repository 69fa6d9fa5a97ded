"""State machine tracking a single deployment from image build to deployed."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set

from ..common.errors import DeploymentError, IllegalStateError


class DeploymentState(str, Enum):
    IDLE = "idle"
    IMAGE_BUILT = "image_built"
    IMAGE_PUSHED = "image_pushed"
    RESOURCES_CLEANED = "resources_cleaned"
    RESOURCES_CREATED = "resources_created"
    DEPLOYED = "deployed"
    FAILED = "failed"


_TRANSITIONS: Dict[DeploymentState, Set[DeploymentState]] = {
    DeploymentState.IDLE: {DeploymentState.IMAGE_BUILT},
    DeploymentState.IMAGE_BUILT: {DeploymentState.IMAGE_PUSHED},
    DeploymentState.IMAGE_PUSHED: {DeploymentState.RESOURCES_CLEANED},
    DeploymentState.RESOURCES_CLEANED: {DeploymentState.RESOURCES_CREATED},
    DeploymentState.RESOURCES_CREATED: {DeploymentState.DEPLOYED},
    DeploymentState.DEPLOYED: set(),
    DeploymentState.FAILED: set(),
}

TERMINAL_STATES = frozenset({DeploymentState.DEPLOYED, DeploymentState.FAILED})


class DeploymentLifecycle:
    """
    Ordered deployment states with failure tracking.

    Steps run inside `stage()`; a step that raises moves the lifecycle to
    FAILED and surfaces as a DeploymentError naming the stage.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.state = DeploymentState.IDLE
        self.history: List[DeploymentState] = [DeploymentState.IDLE]
        self.failed_stage: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: DeploymentState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise IllegalStateError(f"Illegal deployment transition: {self.state.value} -> {target.value}")
        self.logger.debug("Deployment state %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def fail(self, stage: str, cause: BaseException) -> DeploymentError:
        if self.state is DeploymentState.FAILED:
            raise IllegalStateError(f"Deployment already failed at stage {self.failed_stage}")
        self.logger.error("Deployment failed at %s stage (state %s): %s", stage, self.state.value, cause)
        self.state = DeploymentState.FAILED
        self.history.append(DeploymentState.FAILED)
        self.failed_stage = stage
        return DeploymentError(stage, cause)

    @contextmanager
    def stage(self, name: str, target: Optional[DeploymentState] = None) -> Iterator[None]:
        """Run a step; advance to `target` on success, fail the lifecycle otherwise."""
        if self.finished:
            raise IllegalStateError(f"Deployment already {self.state.value}")
        try:
            yield
        except Exception as exc:
            raise self.fail(name, exc) from exc
        if target is not None:
            self.advance(target)
