import copy
import pytest
from blueprint.core import config
from blueprint.services.tree_repository import TreeRepository


def _node(node_id, priority, values=("yes", "no"), depends_on=None):
    node = {
        "id": node_id,
        "priority": priority,
        "question": f"{node_id}?",
        "choices": [{"id": f"{node_id}-{v}", "value": v, "label": v} for v in values],
    }
    if depends_on:
        node["dependsOn"] = depends_on
    return node


SMALL_TREE = {
    "root": _node("root", 1, values=("shop", "blog", "custom")),
    "platform": _node("platform", 2, values=("web", "mobile")),
    "paths": {
        "shop": {
            "web": [
                _node("catalog", 3, values=("physical", "digital")),
                _node("stock", 5, depends_on=["catalog"]),
                _node("checkout", 4, values=("stripe", "paypal")),
            ]
        },
        "blog": {"web": []},
    },
}


@pytest.fixture
def tree_data():
    return copy.deepcopy(SMALL_TREE)


@pytest.fixture
def small_repository(tree_data):
    return TreeRepository.from_dict(tree_data)


@pytest.fixture
def repository():
    return TreeRepository.from_file(config.DEFAULT_DECISION_TREE_FILE)
