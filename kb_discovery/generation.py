# kb_discovery/generation.py

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

import requests

from kb_discovery.category_resolver import CategoryResolver, UnmappedCategory
from kb_discovery.entities import DiscoveryQuestion, ProductWithQuestions
from kb_discovery.errors import AnswerRequired, NotFound
from kb_discovery.kb_client import KnowledgeBaseApiError, KnowledgeBaseClient, KnowledgeBaseNetworkError
from kb_discovery.prompt_composer import compose_prompt
from kb_discovery.repositories import CategoryMappingRepository, PromptRepository

logger = logging.getLogger("kb_discovery")

WARNING_MARKER = "⚠️ "

EMPTY_RESPONSE_MESSAGE = "Received an empty response. Please try again."
UNREACHABLE_MESSAGE = "Unable to reach AnythingLLM. Please ensure the service is running and accessible."
UNSUPPORTED_MODEL_MESSAGE = (
    "The configured workspace model is not supported for chat completions. "
    "Please update the workspace model in AnythingLLM."
)
UPSTREAM_FALLBACK_MESSAGE = "Received an error response from AnythingLLM."
UNEXPECTED_MESSAGE = "An unexpected error occurred while generating the answer."


def unmapped_category_message(category: str) -> str:
    return (
        f'No workspace mapping found for category "{category}". '
        "Please update the category mappings in Settings."
    )


class QuestionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SuccessOutcome:
    text: str
    is_warning = False

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class WarningOutcome:
    text: str
    is_warning = True

    def render(self) -> str:
        return f"{WARNING_MARKER}{self.text}"


Outcome = Union[SuccessOutcome, WarningOutcome]

ProgressCallback = Callable[[str, QuestionState, Optional[Outcome]], None]


def is_warning_text(rendered: Optional[str]) -> bool:
    return bool(rendered) and rendered.startswith(WARNING_MARKER.strip())


def friendly_error_message(error: BaseException) -> str:
    """
    Short, user-facing text for a failed knowledge-base call. The cause itself only goes to the logs.
    """
    message = str(error) if error is not None else ""

    if re.search(r"not valid for chat", message, re.IGNORECASE):
        return UNSUPPORTED_MODEL_MESSAGE

    if isinstance(error, (KnowledgeBaseNetworkError, requests.ConnectionError, requests.Timeout,
                          ConnectionError, TimeoutError)):
        return UNREACHABLE_MESSAGE

    if isinstance(error, KnowledgeBaseApiError):
        return error.detail.strip() or UPSTREAM_FALLBACK_MESSAGE

    return UNEXPECTED_MESSAGE


class GenerationOrchestrator:
    """
    Turns (question, answer) pairs into knowledge-base answers. Never raises for a
    failed call: every failure comes back as a WarningOutcome so a batch keeps going.
    """

    def __init__(
        self,
        kb_client: KnowledgeBaseClient,
        mappings: CategoryMappingRepository,
        prompts: PromptRepository,
    ):
        self.kb_client = kb_client
        self.mappings = mappings
        self.prompts = prompts

    def build_resolver(self) -> CategoryResolver:
        return CategoryResolver(self.mappings.list_mappings(), self.prompts.get_prompts())

    def _call(self, workspace: str, message: str) -> Outcome:
        try:
            response = self.kb_client.send_message(workspace, message)
        except Exception as e:
            logger.warning(f"[GENERATION] Call to workspace '{workspace}' failed: {e!r}", exc_info=True)
            return WarningOutcome(f"Unable to generate answer. {friendly_error_message(e)}")

        if not response or not response.strip():
            logger.warning(f"[GENERATION] Empty response from workspace '{workspace}'")
            return WarningOutcome(EMPTY_RESPONSE_MESSAGE)
        return SuccessOutcome(response.strip())

    def generate_for_question(
        self,
        question: DiscoveryQuestion,
        answer: str,
        customer_name: Optional[str] = None,
        project_name: Optional[str] = None,
        resolver: Optional[CategoryResolver] = None,
    ) -> Outcome:
        resolver = resolver or self.build_resolver()
        resolution = resolver.resolve(question.category)
        if isinstance(resolution, UnmappedCategory):
            logger.warning(f"[GENERATION] No workspace mapping for category '{question.category}'")
            return WarningOutcome(unmapped_category_message(question.category))

        message = compose_prompt(
            resolution.template,
            category=question.category,
            question=question.question,
            answer=answer,
            customer_name=customer_name,
            project_name=project_name,
        )
        logger.info(
            f"[GENERATION] question={question.id} workspace={resolution.workspace} "
            f"template={resolution.template_key}"
        )
        return self._call(resolution.workspace, message)

    def ask(self, category: str, message: str) -> Outcome:
        """
        Free-form knowledge-base search against the workspace mapped to `category`.
        """
        workspace = self.build_resolver().workspace_for(category)
        if isinstance(workspace, UnmappedCategory):
            return WarningOutcome(
                f"Category {category} does not have a corresponding workspace mapping"
            )
        return self._call(workspace, message)

    def start_session(
        self,
        product: ProductWithQuestions,
        customer_name: str = "",
        project_name: str = "",
        answers: Optional[Dict[str, str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "DiscoverySession":
        return DiscoverySession(self, product, customer_name, project_name, answers, on_progress)


class DiscoverySession:
    """
    One customer's pass over a product's questions. Holds the per-question state map and
    the latest outcome per question; nothing here is persisted.
    """

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        product: ProductWithQuestions,
        customer_name: str = "",
        project_name: str = "",
        answers: Optional[Dict[str, str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.orchestrator = orchestrator
        self.product = product
        self.customer_name = customer_name or ""
        self.project_name = project_name or ""
        self.answers: Dict[str, str] = dict(answers or {})
        self.on_progress = on_progress
        self.states: Dict[str, QuestionState] = {q.id: QuestionState.IDLE for q in product.questions}
        self.results: Dict[str, Outcome] = {}
        self.results_available = False

    def _question(self, question_id: str) -> DiscoveryQuestion:
        question = next((q for q in self.product.questions if q.id == question_id), None)
        if question is None:
            raise NotFound(f"Question {question_id} not found in product {self.product.id}")
        return question

    def _answer(self, question_id: str) -> str:
        return (self.answers.get(question_id) or "").strip()

    def _transition(self, question_id: str, state: QuestionState, outcome: Optional[Outcome] = None) -> None:
        self.states[question_id] = state
        if self.on_progress:
            self.on_progress(question_id, state, outcome)

    def _settle(self, question_id: str, outcome: Outcome) -> None:
        state = QuestionState.ERROR if outcome.is_warning else QuestionState.SUCCESS
        self._transition(question_id, state, outcome)

    def set_answer(self, question_id: str, text: str) -> None:
        """Editing an answer drops the outcome generated for the previous text."""
        self._question(question_id)
        self.answers[question_id] = text
        if question_id in self.results:
            del self.results[question_id]
            self.states[question_id] = QuestionState.IDLE
            if not self.results:
                self.results_available = False

    def eligible_questions(self) -> List[DiscoveryQuestion]:
        return [q for q in self.product.questions if self._answer(q.id)]

    def generate_one(self, question_id: str) -> Outcome:
        question = self._question(question_id)
        answer = self._answer(question_id)
        if not answer:
            raise AnswerRequired(question_id)

        self._transition(question_id, QuestionState.LOADING)
        try:
            outcome = self.orchestrator.generate_for_question(
                question, answer, self.customer_name, self.project_name
            )
            self.results[question_id] = outcome
            self.results_available = True
            self._settle(question_id, outcome)
            return outcome
        finally:
            if self.states.get(question_id) == QuestionState.LOADING:
                self.states[question_id] = QuestionState.IDLE

    def generate_all(self) -> Dict[str, Outcome]:
        """
        Sequential pass in question order. Each call finishes before the next one starts;
        unanswered questions are skipped and stay idle.
        """
        for q in self.product.questions:
            self.states[q.id] = QuestionState.IDLE

        eligible = self.eligible_questions()
        for q in eligible:
            self._transition(q.id, QuestionState.LOADING)

        new_results: Dict[str, Outcome] = {}
        resolver = self.orchestrator.build_resolver()
        try:
            for q in eligible:
                outcome = self.orchestrator.generate_for_question(
                    q, self._answer(q.id), self.customer_name, self.project_name, resolver=resolver
                )
                new_results[q.id] = outcome
                self._settle(q.id, outcome)
        finally:
            for q in eligible:
                if self.states.get(q.id) == QuestionState.LOADING:
                    self.states[q.id] = QuestionState.IDLE

        self.results = new_results
        self.results_available = bool(new_results)
        logger.info(
            f"[GENERATION] Bulk pass for product {self.product.id}: "
            f"{len(new_results)} outcome(s), "
            f"{sum(1 for o in new_results.values() if o.is_warning)} warning(s)"
        )
        return dict(new_results)

    def rendered_results(self) -> Dict[str, str]:
        return {qid: outcome.render() for qid, outcome in self.results.items()}

    def snapshot(self) -> dict:
        return {
            "results": self.rendered_results(),
            "states": {qid: state.value for qid, state in self.states.items()},
            "warnings": [qid for qid, o in self.results.items() if o.is_warning],
            "resultsAvailable": self.results_available,
        }
