import pytest

from kb_discovery.discovery_results import build_answers_export, build_generated_export
from kb_discovery.errors import MissingFields


def _create(backend, timestamp=None, customer="Acme", generated=None):
    return backend.results.create_result(
        customer, "Migration", "product-1", "AWS Storage", {"q1": "yes"}, generated, timestamp=timestamp
    )


def test_create_without_generated_answers_then_fetch(backend):
    _create(backend, timestamp="2024-01-01T00:00:00.000Z", customer="Older")
    result_id = _create(backend)

    result = backend.results.get_result(result_id)
    assert result.answers == {"q1": "yes"}
    assert result.generated_answers is None
    assert result.product_name == "AWS Storage"
    assert backend.results.list_results(10, 0)[0].id == result_id


@pytest.mark.parametrize(
    "missing",
    ["customer_name", "project_name", "product_id", "product_name", "answers"],
)
def test_required_fields(backend, missing):
    fields = dict(
        customer_name="Acme",
        project_name="Migration",
        product_id="product-1",
        product_name="AWS Storage",
        answers={"q1": "yes"},
    )
    fields[missing] = None
    with pytest.raises(MissingFields):
        backend.results.create_result(**fields)


def test_answer_keys_are_not_cross_checked(backend):
    result_id = backend.results.create_result("Acme", "P", "product-x", "Ghost", {"not-a-question": "x"})
    assert backend.results.get_result(result_id).answers == {"not-a-question": "x"}


def test_listing_is_timestamp_descending_with_limit_and_offset(backend):
    ids = {
        ts: _create(backend, timestamp=ts)
        for ts in (
            "2024-03-01T00:00:00.000Z",
            "2024-01-01T00:00:00.000Z",
            "2024-02-01T00:00:00.000Z",
        )
    }

    listed = [r.id for r in backend.results.list_results()]
    assert listed == [
        ids["2024-03-01T00:00:00.000Z"],
        ids["2024-02-01T00:00:00.000Z"],
        ids["2024-01-01T00:00:00.000Z"],
    ]
    assert [r.id for r in backend.results.list_results(limit=1, offset=1)] == [ids["2024-02-01T00:00:00.000Z"]]
    assert backend.results.list_results(limit=10, offset=5) == []


def test_generated_answers_are_kept(backend):
    result_id = _create(backend, generated={"q1": "Generated text"})
    assert backend.results.get_result(result_id).generated_answers == {"q1": "Generated text"}


def test_delete_twice_reports_not_found_without_raising(backend):
    result_id = _create(backend)

    assert backend.results.delete_result(result_id) is True
    assert backend.results.delete_result(result_id) is False
    assert backend.results.get_result(result_id) is None


class TestExports:
    def test_answers_export_lists_every_question(self, aws_product):
        first, second, _ = aws_product.questions
        bundle = build_answers_export(aws_product, " Acme ", "Migration", {first.id: "500TB"})

        assert bundle["filename"].startswith("discovery-Acme-Migration-")
        assert bundle["data"]["customerName"] == "Acme"
        assert bundle["data"]["product"] == "AWS Storage"
        rows = bundle["data"]["discoveryResults"]
        assert len(rows) == 3
        assert rows[0] == {"question": first.question, "category": "Cloud Sizing", "answer": "500TB"}
        assert rows[1]["answer"] == ""

    def test_generated_export_requires_generated_answers(self, aws_product):
        with pytest.raises(MissingFields):
            build_generated_export(aws_product, "Acme", "Migration", {}, {})

    def test_generated_export(self, aws_product):
        first = aws_product.questions[0]
        bundle = build_generated_export(aws_product, "Acme", "Migration", {first.id: "500TB"}, {first.id: "Use S3"})

        assert bundle["filename"].startswith("answers-Acme-Migration-")
        assert bundle["data"]["results"][0]["generatedAnswer"] == "Use S3"
        assert bundle["data"]["results"][2]["generatedAnswer"] == ""


def test_empty_answer_map_is_accepted_and_empty_generated_map_kept(backend):
    result_id = backend.results.create_result("Acme", "Migration", "product-1", "AWS Storage", {}, {})

    result = backend.results.get_result(result_id)
    assert result.answers == {}
    assert result.generated_answers == {}


def test_malformed_records_are_skipped(backend):
    kept = _create(backend)
    backend.store.update("discovery-results", [], lambda rows: rows + [{"id": "x"}])

    assert [r.id for r in backend.results.list_results()] == [kept]
    assert backend.results.get_result("x") is None
