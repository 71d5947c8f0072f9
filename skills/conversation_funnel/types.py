"""Public typed contracts for conversation_funnel."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

Role = Literal["AI_AGENT", "CANDIDATE"]
StageType = Literal["engagement", "interview", "scheduling", "completed"]
SourceType = Literal["csv", "summary", "sample"]

AI_ROLE = "AI_AGENT"
CANDIDATE_ROLE = "CANDIDATE"

# Canonical funnel order; names double as aggregation bucket keys.
STAGE_ORDER: tuple[str, ...] = ("engagement", "interview", "scheduling", "completed")
STAGE_NAMES: dict[str, str] = {
    "engagement": "AI Engagement",
    "interview": "Interview Questions",
    "scheduling": "HR Interview Scheduling",
    "completed": "Completed",
}


@dataclass(slots=True)
class Message:
    position: int
    role: Role
    text: str
    timestamp: datetime
    candidate_id: str
    message_id: str = ""
    candidate_name: str = ""

    @property
    def is_ai(self) -> bool:
        return self.role == AI_ROLE


@dataclass(slots=True)
class CandidateConversation:
    candidate_id: str
    candidate_name: str
    messages: list[Message] = field(default_factory=list)
    decision: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def started_at(self) -> Optional[datetime]:
        return self.messages[0].timestamp if self.messages else None

    @property
    def ended_at(self) -> Optional[datetime]:
        return self.messages[-1].timestamp if self.messages else None

    @property
    def duration_seconds(self) -> float:
        if not self.messages:
            return 0.0
        return (self.messages[-1].timestamp - self.messages[0].timestamp).total_seconds()


@dataclass(slots=True)
class StageEvent:
    id: str
    name: str
    stage_type: StageType
    timestamp: datetime
    message: str
    completed: bool = False
    sub_stage: Optional[str] = None
    synthetic: bool = False


@dataclass(slots=True)
class CandidateFunnelResult:
    candidate_id: str
    candidate_name: str
    stages: list[StageEvent]
    current_stage: str
    decision_made: bool
    total_duration: float
    decision_type: Optional[str] = None
    decision_timestamp: Optional[datetime] = None
    dropped_at: Optional[str] = None


@dataclass(slots=True)
class FunnelStageMetrics:
    stage_name: str
    stage_id: str
    candidates_entered: int
    candidates_completed: int
    candidates_dropped: int
    conversion_rate: float
    avg_time_in_stage: float
    sub_stages: Optional[list[FunnelStageMetrics]] = None
    question_number: Optional[int] = None


@dataclass(slots=True)
class FunnelSummary:
    total_candidates: int
    stages: list[FunnelStageMetrics]
    overall_conversion_rate: float
    avg_time_to_decision: float
    candidate_details: list[CandidateFunnelResult] = field(default_factory=list)

    def stage(self, stage_type: str) -> FunnelStageMetrics:
        name = STAGE_NAMES[stage_type]
        return next(s for s in self.stages if s.stage_name == name)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class FunnelRunResult:
    run_id: str
    summary: FunnelSummary
    artifacts: dict[str, str]
    warnings: list[str] = field(default_factory=list)
    debug_samples: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
