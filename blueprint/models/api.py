from typing import Dict, List, Optional, Union
from pydantic import AliasChoices, ConfigDict, Field

from blueprint.models.decision_tree import CamelModel, DecisionNode
from blueprint.models.session import WizardSession


class Progress(CamelModel):
    current_step: int
    total_steps: int
    percentage: int


class NextQuestionRequest(CamelModel):
    decisions: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("decisions", "currentDecisions"),
    )
    purpose: Optional[str] = Field(None, validation_alias=AliasChoices("purpose", "appPurpose"))
    platform: Optional[str] = Field(None, validation_alias=AliasChoices("platform", "appType"))


class NextQuestionResponse(CamelModel):
    completed: bool
    question: Optional[DecisionNode] = None
    progress: Progress


class SaveSessionRequest(CamelModel):
    session_id: str
    purpose: Optional[str] = Field(None, validation_alias=AliasChoices("purpose", "appPurpose"))
    platform: Optional[str] = Field(None, validation_alias=AliasChoices("platform", "appType"))
    decisions: Dict[str, str] = Field(default_factory=dict)
    current_step: int = 0
    total_steps: int = 2


class SaveSessionResponse(CamelModel):
    success: bool


class GenerationRequest(CamelModel):
    session_id: str
    purpose: Optional[str] = Field(None, validation_alias=AliasChoices("purpose", "appPurpose"))
    platform: Optional[str] = Field(None, validation_alias=AliasChoices("platform", "appType"))
    decisions: Dict[str, str]


class TechStack(CamelModel):
    model_config = ConfigDict(extra="allow")

    frontend: Optional[str] = None
    backend: Optional[str] = None
    database: Optional[str] = None
    authentication: Optional[str] = None
    payment: Optional[str] = None
    hosting: Optional[str] = None


class BlueprintFeature(CamelModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    description: str = ""
    priority: str = "medium"


class Monetization(CamelModel):
    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    pricing: Optional[str] = None


class UserPersona(CamelModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    age: Optional[Union[str, int]] = None
    occupation: Optional[str] = None
    goals: List[str] = []
    pain_points: List[str] = []


class ProjectBlueprint(CamelModel):
    """Structured project mindmap returned by the generation step."""
    model_config = ConfigDict(extra="allow")

    project_name: str
    features: List[BlueprintFeature]
    project_description: str = ""
    target_audience: str = ""
    competitors: List[str] = []
    tech_stack: TechStack = Field(default_factory=TechStack)
    monetization: Monetization = Field(default_factory=Monetization)
    user_persona: UserPersona = Field(default_factory=UserPersona)


class GenerateResponse(CamelModel):
    success: bool
    session_id: str
    data: Optional[ProjectBlueprint] = None
    error: Optional[str] = None


class RecordDecisionRequest(CamelModel):
    node_id: str
    value: str


class SessionStateResponse(CamelModel):
    success: bool = True
    session: WizardSession
    completed: bool
    question: Optional[DecisionNode] = None
    progress: Progress


class PathSummary(CamelModel):
    purpose: str
    platform: str
    total_steps: int
