"""
API request and response models
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class WorkflowDocument(BaseModel):
    """Workflow document, same shape as the YAML/JSON files"""
    workflow: Dict[str, Any] = Field(..., description="Workflow definition")


class WorkflowSummary(BaseModel):
    name: str
    start_at: str
    time_budget: float
    nodes: List[str]
    comment: Optional[str] = None


class RunRequest(BaseModel):
    """Start a run"""
    payload: Dict[str, Any] = Field(default_factory=dict, description="Initial payload")
    time_budget: Optional[float] = Field(None, gt=0, description="Budget in seconds")


class FailureModel(BaseModel):
    kind: str
    message: Optional[str] = None
    detail: Any = None


class TransitionModel(BaseModel):
    node: str
    attempt: int
    outcome: str
    elapsed: float
    timestamp: str
    error_kind: Optional[str] = None
    delay: Optional[float] = None
    next_node: Optional[str] = None


class RunResponse(BaseModel):
    execution_id: str
    workflow: str
    disposition: str
    payload: Dict[str, Any]
    failure: Optional[FailureModel] = None
    duration: Optional[float] = None
    transitions: List[TransitionModel]
