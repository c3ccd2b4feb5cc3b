import os

def test_app_structure():
    assert os.path.exists("blueprint"), "blueprint directory should exist"
    assert os.path.exists("blueprint/__init__.py"), "blueprint package should be initialized"
    assert os.path.exists("blueprint/core"), "blueprint/core directory should exist"
    assert os.path.exists("blueprint/routers"), "blueprint/routers directory should exist"
    assert os.path.exists("blueprint/models"), "blueprint/models directory should exist"
    assert os.path.exists("blueprint/services"), "blueprint/services directory should exist"
    assert os.path.exists("blueprint/data/decision_tree.json"), "default decision tree should ship with the package"
