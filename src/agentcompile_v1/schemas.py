from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EntryType = Literal["user", "assistant", "tool_use", "tool_result", "system"]
PairStatus = Literal["complete", "partial"]
SessionSource = Literal["startup", "resume", "clear", "compact"]
SessionEndReason = Literal[
    "clear", "logout", "prompt_input_exit", "bypass_permissions_disabled", "other"
]
Tier = Literal["ephemeral", "persistent"]
Classification = Literal["deterministic", "semi-deterministic", "non-deterministic"]
ExecutionStatus = Literal["success", "failure", "timeout", "error"]
ArtifactType = Literal["observation", "pattern", "candidate", "script", "decision", "execution"]
LineageStage = Literal["capture", "analysis", "detection", "generation", "gatekeeping", "feedback"]

SESSION_SOURCES = ("startup", "resume", "clear", "compact")
SESSION_END_REASONS = (
    "clear",
    "logout",
    "prompt_input_exit",
    "bypass_permissions_disabled",
    "other",
)


class TranscriptMessage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    role: str
    content: Any = None


class TranscriptEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    uuid: str
    parent_uuid: Optional[str] = Field(default=None, alias="parentUuid")
    session_id: str = Field(alias="sessionId")
    timestamp: str
    type: EntryType
    is_sidechain: bool = Field(default=False, alias="isSidechain")
    message: Optional[TranscriptMessage] = None
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    tool_use_id: Optional[str] = None
    tool_output: Any = None


class ExecutionContext(BaseModel):
    session_id: str
    phase: Optional[str] = None
    active_skill: Optional[str] = None


class ToolExecutionPair(BaseModel):
    id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[str] = None
    output_hash: Optional[str] = None
    status: PairStatus
    timestamp: str
    context: ExecutionContext


class StoredExecutionBatch(BaseModel):
    session_id: str
    context: ExecutionContext
    pairs: List[ToolExecutionPair] = Field(default_factory=list)
    complete_count: int = 0
    partial_count: int = 0
    captured_at: int


class SessionMetrics(BaseModel):
    user_messages: int = 0
    assistant_messages: int = 0
    tool_calls: int = 0
    unique_files_read: int = 0
    unique_files_written: int = 0
    unique_commands_run: int = 0


class SessionObservation(BaseModel):
    session_id: str
    start_time: int
    end_time: int
    duration_minutes: int
    source: SessionSource = "startup"
    reason: SessionEndReason = "other"
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    top_commands: List[str] = Field(default_factory=list)
    top_files: List[str] = Field(default_factory=list)
    top_tools: List[str] = Field(default_factory=list)
    active_skills: List[str] = Field(default_factory=list)
    tier: Tier = "persistent"
    squashed_from: Optional[int] = None

    @field_validator("tier", mode="before")
    @classmethod
    def _default_tier(cls, value: Any) -> Any:
        return "persistent" if value is None else value


class OperationKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_name: str
    input_hash: str

    @property
    def operation_id(self) -> str:
        return f"{self.tool_name}:{self.input_hash}"


class DeterminismScore(BaseModel):
    operation: OperationKey
    variance_score: float = Field(ge=0.0, le=1.0)
    observation_count: int
    unique_outputs: int
    session_ids: List[str] = Field(default_factory=list)


class ClassifiedOperation(BaseModel):
    score: DeterminismScore
    classification: Classification
    determinism: float = Field(ge=0.0, le=1.0)

    @property
    def operation(self) -> OperationKey:
        return self.score.operation

    @property
    def observation_count(self) -> int:
        return self.score.observation_count


class PromotionCandidate(BaseModel):
    operation: ClassifiedOperation
    tool_name: str
    frequency: int
    estimated_token_savings: int
    composite_score: float = Field(ge=0.0, le=1.0)
    meets_confidence: bool

    @property
    def operation_id(self) -> str:
        return self.operation.operation.operation_id


class GatekeeperEvidence(BaseModel):
    determinism: float
    composite_score: float
    observation_count: int
    threshold_determinism: float
    threshold_confidence: float
    threshold_observations: int
    f1_score: Optional[float] = None
    threshold_f1: Optional[float] = None
    accuracy: Optional[float] = None
    threshold_accuracy: Optional[float] = None
    mcc: Optional[float] = None
    threshold_mcc: Optional[float] = None


class GatekeeperDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate: PromotionCandidate
    approved: bool
    reasoning: List[str]
    evidence: GatekeeperEvidence
    timestamp: str


class DriftEvent(BaseModel):
    operation_id: str
    timestamp: str
    matched: bool
    actual_hash: str
    expected_hash: str
    consecutive_mismatches: int = Field(ge=0)


class DemotionDecision(BaseModel):
    operation_id: str
    demoted: bool
    reason: str
    consecutive_mismatches: int = 0
    events: List[DriftEvent] = Field(default_factory=list)


class OffloadResult(BaseModel):
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False


class CompletionSignal(BaseModel):
    operation_id: str
    status: ExecutionStatus
    result: OffloadResult
    error: Optional[str] = None

    @classmethod
    def from_result(
        cls, operation_id: str, result: OffloadResult, error: Optional[str] = None
    ) -> "CompletionSignal":
        if error:
            status: ExecutionStatus = "error"
        elif result.timed_out:
            status = "timeout"
        elif result.exit_code == 0:
            status = "success"
        else:
            status = "failure"
        return cls(operation_id=operation_id, status=status, result=result, error=error)


class FeedbackRecord(BaseModel):
    operation_id: str
    status: ExecutionStatus
    exit_code: int
    duration_ms: int
    stdout_hash: str
    timestamp: str
    error: Optional[str] = None


class LineageEntry(BaseModel):
    artifact_id: str = Field(min_length=1)
    artifact_type: ArtifactType
    stage: LineageStage
    inputs: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str


class LineageChain(BaseModel):
    artifact: Optional[LineageEntry] = None
    upstream: List[LineageEntry] = Field(default_factory=list)
    downstream: List[LineageEntry] = Field(default_factory=list)


class BenchmarkReport(BaseModel):
    precision: float = Field(ge=0.0, le=1.0)
    recall: float = Field(ge=0.0, le=1.0)
    f1: float = Field(ge=0.0, le=1.0)
    accuracy: float = Field(ge=0.0, le=1.0)
    true_positives: int = Field(default=0, ge=0)
    true_negatives: int = Field(default=0, ge=0)
    false_positives: int = Field(default=0, ge=0)
    false_negatives: int = Field(default=0, ge=0)
    data_points: Optional[int] = None


class CompactionResult(BaseModel):
    path: str
    retained: int = 0
    removed: int = 0
    error: Optional[str] = None


def observation_artifact_id(session_id: str, tool_name: str, input_hash: str) -> str:
    return f"obs:{session_id}:{tool_name}:{input_hash}"


def pattern_artifact_id(tool_name: str, input_hash: str) -> str:
    return f"pat:{tool_name}:{input_hash}"


def candidate_artifact_id(tool_name: str, input_hash: str) -> str:
    return f"cand:{tool_name}:{input_hash}"


def script_artifact_id(operation_id: str) -> str:
    return f"script:{operation_id}"


def decision_artifact_id(operation_id: str, timestamp: str) -> str:
    return f"gate:{operation_id}:{timestamp}"


def execution_artifact_id(operation_id: str, timestamp: str) -> str:
    return f"exec:{operation_id}:{timestamp}"
