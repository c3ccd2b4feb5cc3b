import json
import os
import logging
from typing import Dict, List, Optional, Tuple, FrozenSet

from pydantic import ValidationError

from blueprint.core.exceptions import ConfigurationError
from blueprint.models.decision_tree import (
    DecisionNode,
    DecisionTreeCatalogue,
    EducationalTooltip,
    ROOT_NODE_ID,
    PLATFORM_NODE_ID,
)

logger = logging.getLogger(__name__)

PathArray = Tuple[DecisionNode, ...]


class TreeRepository:
    """
    Read-only catalogue of decision nodes keyed by (purpose, platform).

    The catalogue is validated once on construction; any broken dependency or
    duplicate id raises ConfigurationError so a bad tree never reaches traversal.
    """

    def __init__(self, catalogue: DecisionTreeCatalogue):
        self._catalogue = catalogue
        self._paths: Dict[Tuple[str, str], PathArray] = {}
        self._validate_fixed_node(catalogue.root, ROOT_NODE_ID)
        self._validate_fixed_node(catalogue.platform, PLATFORM_NODE_ID)

        purposes = set(catalogue.root.choice_values)
        platforms = set(catalogue.platform.choice_values)
        for purpose, by_platform in catalogue.paths.items():
            if purpose not in purposes:
                raise ConfigurationError(f"Path purpose '{purpose}' is not a choice of the root question")
            for platform, nodes in by_platform.items():
                if platform not in platforms:
                    raise ConfigurationError(f"Path platform '{platform}' is not a choice of the platform question")
                self._paths[(purpose, platform)] = self._validate_path(purpose, platform, nodes)

        logger.info(f"Loaded decision tree with {len(self._paths)} path(s)")

    @classmethod
    def from_file(cls, path: str) -> "TreeRepository":
        if not os.path.exists(path):
            raise ConfigurationError(f"Decision tree file {path} not found")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Decision tree file {path} is not valid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict) -> "TreeRepository":
        try:
            catalogue = DecisionTreeCatalogue.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid decision tree: {e}") from e
        return cls(catalogue)

    # -- validation ---------------------------------------------------------

    def _validate_choices(self, node: DecisionNode, where: str):
        if not node.choices:
            raise ConfigurationError(f"Node '{node.id}' in {where} has no choices")
        seen_ids, seen_values = set(), set()
        for choice in node.choices:
            if choice.id in seen_ids:
                raise ConfigurationError(f"Duplicate choice id '{choice.id}' in node '{node.id}' ({where})")
            if choice.value in seen_values:
                raise ConfigurationError(f"Duplicate choice value '{choice.value}' in node '{node.id}' ({where})")
            seen_ids.add(choice.id)
            seen_values.add(choice.value)

    def _validate_fixed_node(self, node: DecisionNode, expected_id: str):
        if node.id != expected_id:
            raise ConfigurationError(f"Expected node id '{expected_id}', got '{node.id}'")
        if node.depends_on:
            raise ConfigurationError(f"Node '{expected_id}' cannot depend on other nodes")
        self._validate_choices(node, expected_id)

    def _validate_path(self, purpose: str, platform: str, nodes: List[DecisionNode]) -> PathArray:
        where = f"path {purpose}/{platform}"
        # sorted() is stable, so equal priorities keep catalogue order.
        ordered = sorted(nodes, key=lambda n: n.priority)
        available = {ROOT_NODE_ID, PLATFORM_NODE_ID}
        for node in ordered:
            if node.id in (ROOT_NODE_ID, PLATFORM_NODE_ID):
                raise ConfigurationError(f"Node id '{node.id}' is reserved ({where})")
            if node.id in available:
                raise ConfigurationError(f"Duplicate node id '{node.id}' in {where}")
            for dep in node.depends_on:
                if dep not in available:
                    raise ConfigurationError(
                        f"Node '{node.id}' in {where} depends on '{dep}', "
                        f"which is not answered before it"
                    )
            self._validate_choices(node, where)
            available.add(node.id)
        return tuple(ordered)

    # -- lookups ------------------------------------------------------------

    @property
    def root(self) -> DecisionNode:
        return self._catalogue.root

    @property
    def platform(self) -> DecisionNode:
        return self._catalogue.platform

    @property
    def tooltips(self) -> Dict[str, EducationalTooltip]:
        return dict(self._catalogue.tooltips)

    def lookup_path(self, purpose: Optional[str], platform: Optional[str]) -> Optional[PathArray]:
        """Returns the path array, or None when the combination is not defined."""
        if purpose is None or platform is None:
            return None
        return self._paths.get((purpose, platform))

    def available_paths(self) -> List[Tuple[str, str, int]]:
        return [(purpose, platform, len(nodes)) for (purpose, platform), nodes in self._paths.items()]

    def known_node_ids(self, purpose: Optional[str], platform: Optional[str]) -> FrozenSet[str]:
        ids = {ROOT_NODE_ID, PLATFORM_NODE_ID}
        for node in self.lookup_path(purpose, platform) or ():
            ids.add(node.id)
        return frozenset(ids)

    def node(self, purpose: Optional[str], platform: Optional[str], node_id: str) -> Optional[DecisionNode]:
        if node_id == ROOT_NODE_ID:
            return self.root
        if node_id == PLATFORM_NODE_ID:
            return self.platform
        for node in self.lookup_path(purpose, platform) or ():
            if node.id == node_id:
                return node
        return None
