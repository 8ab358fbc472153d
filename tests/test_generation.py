import pytest
import requests

from kb_discovery.discovery_prompts import DEFAULT_PROMPTS
from kb_discovery.entities import QuestionInput
from kb_discovery.errors import AnswerRequired
from kb_discovery.generation import (
    EMPTY_RESPONSE_MESSAGE,
    UNEXPECTED_MESSAGE,
    UNREACHABLE_MESSAGE,
    UNSUPPORTED_MODEL_MESSAGE,
    WARNING_MARKER,
    QuestionState,
    SuccessOutcome,
    WarningOutcome,
    friendly_error_message,
    is_warning_text,
)
from kb_discovery.kb_client import KnowledgeBaseApiError, KnowledgeBaseNetworkError


def test_end_to_end_sizing_question(backend, kb):
    backend.mappings.create_mapping("Cloud Sizing", "aws-ws")
    product = backend.products.create_product(
        "AWS Storage", [QuestionInput(question="How much data?", category="Cloud Sizing")]
    )
    question = product.questions[0]

    session = backend.orchestrator.start_session(product, "Acme", "Migration", {question.id: "500TB, hot tier"})
    outcomes = session.generate_all()

    assert list(outcomes) == [question.id]
    outcome = outcomes[question.id]
    assert isinstance(outcome, SuccessOutcome)
    assert outcome.text.startswith("OK:")
    workspace, sent = kb.calls[0]
    assert workspace == "aws-ws"
    assert sent.startswith(DEFAULT_PROMPTS["sizing"])
    assert "Customer Response: 500TB, hot tier" in sent
    assert session.states[question.id] == QuestionState.SUCCESS
    assert session.results_available is True


def test_bulk_generates_only_answered_questions_in_order(backend, kb, aws_product):
    sizing, general, matrix = aws_product.questions
    answers = {sizing.id: "500TB", general.id: "   ", matrix.id: "S3 and Glacier"}

    session = backend.orchestrator.start_session(aws_product, answers=answers)
    outcomes = session.generate_all()

    assert set(outcomes) == {sizing.id, matrix.id}
    assert [w for w, _ in kb.calls] == ["aws-ws", "matrix-ws"]
    assert session.states[general.id] == QuestionState.IDLE
    assert QuestionState.LOADING not in session.states.values()


def test_bulk_marks_all_eligible_loading_before_the_first_call(backend, aws_product):
    sizing, general, matrix = aws_product.questions
    events = []

    session = backend.orchestrator.start_session(
        aws_product,
        answers={sizing.id: "a", matrix.id: "b"},
        on_progress=lambda qid, state, outcome: events.append((qid, state)),
    )
    session.generate_all()

    assert events == [
        (sizing.id, QuestionState.LOADING),
        (matrix.id, QuestionState.LOADING),
        (sizing.id, QuestionState.SUCCESS),
        (matrix.id, QuestionState.SUCCESS),
    ]


def test_bulk_leaves_nothing_loading_when_a_callback_fails(backend, aws_product):
    sizing, general, matrix = aws_product.questions
    successes = []

    def on_progress(qid, state, outcome):
        if state == QuestionState.SUCCESS:
            successes.append(qid)
            if len(successes) == 2:
                raise RuntimeError("progress sink went away")

    session = backend.orchestrator.start_session(
        aws_product,
        answers={sizing.id: "a", general.id: "b", matrix.id: "c"},
        on_progress=on_progress,
    )
    with pytest.raises(RuntimeError):
        session.generate_all()

    assert QuestionState.LOADING not in session.states.values()
    assert session.states[matrix.id] == QuestionState.IDLE


def test_bulk_with_no_answers_clears_results(backend, kb, aws_product):
    first = aws_product.questions[0]
    session = backend.orchestrator.start_session(aws_product, answers={first.id: "500TB"})
    session.generate_one(first.id)
    assert session.results_available

    session.answers = {}
    assert session.generate_all() == {}
    assert session.results == {}
    assert session.results_available is False
    assert len(kb.calls) == 1


def test_whitespace_response_is_a_warning(backend, kb, aws_product):
    kb.handler = lambda workspace, text: "  \n\t "
    first = aws_product.questions[0]

    outcome = backend.orchestrator.start_session(aws_product, answers={first.id: "500TB"}).generate_one(first.id)

    assert isinstance(outcome, WarningOutcome)
    assert outcome.text == EMPTY_RESPONSE_MESSAGE
    assert outcome.render() == WARNING_MARKER + EMPTY_RESPONSE_MESSAGE


def test_success_text_is_trimmed(backend, kb, aws_product):
    kb.handler = lambda workspace, text: "\n  Use S3 Intelligent-Tiering.  \n"
    first = aws_product.questions[0]

    outcome = backend.orchestrator.start_session(aws_product, answers={first.id: "500TB"}).generate_one(first.id)

    assert outcome == SuccessOutcome("Use S3 Intelligent-Tiering.")
    assert not is_warning_text(outcome.render())


def test_unmapped_category_is_a_warning_and_the_batch_continues(backend, kb, aws_product):
    backend.mappings.delete_mapping("Cloud Sizing")
    sizing, general, _ = aws_product.questions

    session = backend.orchestrator.start_session(aws_product, answers={sizing.id: "a", general.id: "b"})
    outcomes = session.generate_all()

    assert outcomes[sizing.id].is_warning
    assert 'No workspace mapping found for category "Cloud Sizing"' in outcomes[sizing.id].text
    assert session.states[sizing.id] == QuestionState.ERROR
    assert not outcomes[general.id].is_warning
    assert [w for w, _ in kb.calls] == ["general-ws"]


def test_failures_are_isolated_per_question(backend, kb, aws_product):
    def handler(workspace, text):
        if workspace == "aws-ws":
            raise KnowledgeBaseNetworkError("http://kb")
        return "fine"

    kb.handler = handler
    sizing, general, matrix = aws_product.questions
    session = backend.orchestrator.start_session(
        aws_product, answers={sizing.id: "a", general.id: "b", matrix.id: "c"}
    )
    outcomes = session.generate_all()

    assert outcomes[sizing.id].render() == f"{WARNING_MARKER}Unable to generate answer. {UNREACHABLE_MESSAGE}"
    assert outcomes[general.id] == SuccessOutcome("fine")
    assert outcomes[matrix.id] == SuccessOutcome("fine")
    assert session.snapshot()["warnings"] == [sizing.id]


def test_single_generate_requires_an_answer(backend, kb, aws_product):
    first = aws_product.questions[0]
    session = backend.orchestrator.start_session(aws_product, answers={first.id: "   "})

    with pytest.raises(AnswerRequired):
        session.generate_one(first.id)

    assert session.states[first.id] == QuestionState.IDLE
    assert kb.calls == []


def test_single_generate_retries_after_error(backend, kb, aws_product):
    first = aws_product.questions[0]
    kb.handler = lambda workspace, text: ""
    session = backend.orchestrator.start_session(aws_product, answers={first.id: "500TB"})
    session.generate_one(first.id)
    assert session.states[first.id] == QuestionState.ERROR

    kb.handler = lambda workspace, text: "second try"
    session.generate_one(first.id)

    assert session.states[first.id] == QuestionState.SUCCESS
    assert session.rendered_results() == {first.id: "second try"}


def test_editing_an_answer_drops_its_result(backend, aws_product):
    first = aws_product.questions[0]
    session = backend.orchestrator.start_session(aws_product, answers={first.id: "500TB"})
    session.generate_one(first.id)

    session.set_answer(first.id, "600TB")

    assert session.results == {}
    assert session.results_available is False
    assert session.states[first.id] == QuestionState.IDLE


def test_ask_uses_the_category_workspace_verbatim(backend, kb, aws_product):
    outcome = backend.orchestrator.ask("Cloud Matrix", "What is the matrix?")

    assert outcome == SuccessOutcome("OK:What is the matrix?")
    assert kb.calls == [("matrix-ws", "What is the matrix?")]
    assert backend.orchestrator.ask("Unknown", "hi").is_warning


class TestFriendlyErrorMessage:
    def test_network(self):
        assert friendly_error_message(KnowledgeBaseNetworkError("http://kb")) == UNREACHABLE_MESSAGE
        assert friendly_error_message(requests.Timeout("read timed out")) == UNREACHABLE_MESSAGE
        assert friendly_error_message(TimeoutError()) == UNREACHABLE_MESSAGE

    def test_upstream_detail_is_surfaced(self):
        error = KnowledgeBaseApiError(403, "Forbidden", "Invalid API Key")
        assert friendly_error_message(error) == "Invalid API Key"

    def test_model_not_valid_for_chat(self):
        error = KnowledgeBaseApiError(500, "Internal Server Error", "Model foo is not valid for chat")
        assert friendly_error_message(error) == UNSUPPORTED_MODEL_MESSAGE

    def test_anything_else_is_generic(self):
        assert friendly_error_message(RuntimeError("boom")) == UNEXPECTED_MESSAGE
        assert friendly_error_message(ValueError("")) == UNEXPECTED_MESSAGE


def test_is_warning_text():
    assert is_warning_text(WarningOutcome("x").render())
    assert not is_warning_text("plain answer")
    assert not is_warning_text("")
    assert not is_warning_text(None)
