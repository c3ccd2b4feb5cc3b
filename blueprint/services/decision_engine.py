"""
Traversal over the decision tree.

Everything here is a pure function of the repository and the decisions made so
far. There is no cursor: the position in the wizard is re-derived from the
decision store on every call, so retrying a request or resuming a stored
session lands on exactly the same question.
"""
import math
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from blueprint.core.exceptions import ConfigurationError, IncompleteSessionError
from blueprint.models.api import GenerationRequest, Progress
from blueprint.models.decision_tree import DecisionNode, ROOT_NODE_ID, PLATFORM_NODE_ID
from blueprint.services.tree_repository import TreeRepository

# root + platform
FIXED_STEPS = 2


@dataclass(frozen=True)
class NextNodeResult:
    question: Optional[DecisionNode] = None

    @property
    def completed(self) -> bool:
        return False


@dataclass(frozen=True)
class AskRoot(NextNodeResult):
    pass


@dataclass(frozen=True)
class AskPlatform(NextNodeResult):
    pass


@dataclass(frozen=True)
class AskNode(NextNodeResult):
    pass


@dataclass(frozen=True)
class Completed(NextNodeResult):
    @property
    def completed(self) -> bool:
        return True


def resolve_selection(purpose: Optional[str], platform: Optional[str], decisions: Mapping[str, str]) -> Tuple[Optional[str], Optional[str]]:
    """Explicit purpose/platform win; otherwise fall back to the root/platform answers."""
    return (
        purpose if purpose is not None else decisions.get(ROOT_NODE_ID),
        platform if platform is not None else decisions.get(PLATFORM_NODE_ID),
    )


def next_node(repository: TreeRepository, purpose: Optional[str], platform: Optional[str], decisions: Mapping[str, str]) -> NextNodeResult:
    if ROOT_NODE_ID not in decisions:
        return AskRoot(repository.root)
    if PLATFORM_NODE_ID not in decisions:
        return AskPlatform(repository.platform)

    purpose, platform = resolve_selection(purpose, platform, decisions)
    path = repository.lookup_path(purpose, platform)
    if not path:
        # Undefined combination: nothing more to ask, go straight to generation.
        return Completed()

    # Path arrays are already sorted by ascending priority.
    for node in path:
        if node.id in decisions:
            continue
        if all(dep in decisions for dep in node.depends_on):
            return AskNode(node)

    pending = [node.id for node in path if node.id not in decisions]
    if pending:
        raise ConfigurationError(f"Nodes {pending} in path {purpose}/{platform} can never become eligible")
    return Completed()


def _projected_path_length(repository: TreeRepository, purpose: Optional[str], platform: Optional[str]) -> int:
    path = repository.lookup_path(purpose, platform)
    if path is not None:
        return len(path)
    if purpose is not None and platform is None:
        # Platform still open: assume the longest path this purpose can lead to,
        # so the percentage never drops once the platform is picked.
        lengths = [n for (p, _, n) in repository.available_paths() if p == purpose]
        return max(lengths, default=0)
    return 0


def percent(current: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up rounding, not Python's banker's rounding.
    value = math.floor(current * 100 / total + 0.5)
    return max(0, min(100, value))


def calculate_progress(repository: TreeRepository, purpose: Optional[str], platform: Optional[str], decisions: Mapping[str, str]) -> Progress:
    purpose, platform = resolve_selection(purpose, platform, decisions)
    total_steps = FIXED_STEPS + _projected_path_length(repository, purpose, platform)

    current_step = sum(1 for key in (ROOT_NODE_ID, PLATFORM_NODE_ID) if key in decisions)
    for node in repository.lookup_path(purpose, platform) or ():
        if node.id in decisions:
            current_step += 1

    return Progress(
        current_step=current_step,
        total_steps=total_steps,
        percentage=percent(current_step, total_steps),
    )


def build_generation_request(session_id: str, purpose: Optional[str], platform: Optional[str], decisions: Mapping[str, str]) -> GenerationRequest:
    if not purpose or not platform:
        raise IncompleteSessionError("Purpose and platform must be decided before generation")
    return GenerationRequest(
        session_id=session_id,
        purpose=purpose,
        platform=platform,
        decisions=dict(decisions),
    )
