from enum import Enum
from typing import List, Optional, Dict
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ROOT_NODE_ID = "root"
PLATFORM_NODE_ID = "platform"


class CamelModel(BaseModel):
    """Serialized with camelCase keys; snake_case accepted on input too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class NodeType(str, Enum):
    DECISION = "decision"
    COMPLETED = "completed"
    LOCKED = "locked"
    INFO = "info"
    GENERATE = "generate"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Choice(CamelModel):
    id: str
    value: str
    label: str = ""
    description: str = ""
    recommended: bool = False
    learn_more: Optional[str] = None
    estimated_time: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    # Display-only metadata, traversal never looks at these.
    prerequisites: List[str] = []
    unlocks: List[str] = []


class DecisionNode(CamelModel):
    id: str
    priority: int
    question: str = ""
    category: str = ""
    explanation: str = ""
    node_type: NodeType = NodeType.DECISION
    choices: List[Choice] = []
    depends_on: List[str] = []

    def choice_for(self, value: str) -> Optional[Choice]:
        for choice in self.choices:
            if choice.value == value:
                return choice
        return None

    @property
    def choice_values(self) -> List[str]:
        return [c.value for c in self.choices]


class EducationalTooltip(CamelModel):
    term: str
    simple_explanation: str
    why_it_matters: str
    technical_explanation: Optional[str] = None
    example: Optional[str] = None


class DecisionTreeCatalogue(CamelModel):
    """Raw catalogue as stored on disk: paths[purpose][platform] -> nodes."""
    root: DecisionNode
    platform: DecisionNode
    paths: Dict[str, Dict[str, List[DecisionNode]]] = Field(default_factory=dict)
    tooltips: Dict[str, EducationalTooltip] = Field(default_factory=dict)
