# kb_discovery/entities.py
import time
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, TypeAlias
from uuid import uuid4

from pydantic import BaseModel, Field

Timestamp: TypeAlias = str
Role: TypeAlias = Literal["admin", "user"]

ROLES = ("admin", "user")


def now_iso() -> Timestamp:
    # same shape as JS Date.toISOString(): millisecond precision, Z suffix
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def mint_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid4().hex[:9]}"


class User(BaseModel):
    id: str
    username: str
    password_hash: str
    role: Role = "user"
    created_at: Timestamp
    updated_at: Optional[Timestamp] = None

    def public(self) -> dict:
        return self.model_dump(exclude={"password_hash"})


class CategoryMapping(BaseModel):
    id: str
    category: str
    workspace_name: str
    created_at: Timestamp
    updated_at: Optional[Timestamp] = None


class DiscoveryQuestion(BaseModel):
    id: str
    product_id: str
    question: str
    category: str
    question_order: int
    created_at: Timestamp


class QuestionInput(BaseModel):
    """A question as submitted on product create/update. `id` is kept when present."""

    id: Optional[str] = None
    question: str
    category: str


class Product(BaseModel):
    id: str
    name: str
    created_at: Timestamp
    updated_at: Optional[Timestamp] = None


class ProductWithQuestions(Product):
    questions: List[DiscoveryQuestion] = Field(default_factory=list)


class PromptSettings(BaseModel):
    general: str
    sizing: str
    matrix: str


class DiscoveryResult(BaseModel):
    id: str
    customer_name: str
    project_name: str
    product_id: str
    # snapshot taken at creation time, never re-resolved
    product_name: str
    answers: Dict[str, str]
    generated_answers: Optional[Dict[str, str]] = None
    timestamp: Timestamp
