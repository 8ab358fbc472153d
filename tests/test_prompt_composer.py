import pytest

from kb_discovery.category_resolver import (
    CategoryResolver,
    Resolution,
    UnmappedCategory,
    select_template_key,
)
from kb_discovery.entities import CategoryMapping, PromptSettings
from kb_discovery.prompt_composer import compose_prompt

PROMPTS = PromptSettings(general="GENERAL", sizing="SIZING", matrix="MATRIX")


def _mapping(category, workspace):
    return CategoryMapping(id=f"mapping-{category}", category=category, workspace_name=workspace, created_at="t")


class TestComposePrompt:
    def test_full_context(self):
        composed = compose_prompt(
            "  You are a sizing specialist.  ",
            category="Cloud Sizing",
            question="How much data?",
            answer="500TB, hot tier",
            customer_name=" Acme ",
            project_name="Migration",
        )
        assert composed == (
            "You are a sizing specialist.\n"
            "\n"
            "Customer Name: Acme\n"
            "Project Name: Migration\n"
            "\n"
            "Question Category: Cloud Sizing\n"
            "Question: How much data?\n"
            "Customer Response: 500TB, hot tier\n"
            "\n"
            "Provide a clear, actionable reply grounded in the knowledge base."
        )

    def test_blank_names_omit_both_context_lines(self):
        composed = compose_prompt("T", "Cloud General", "Q?", "A", customer_name="   ", project_name="")
        assert "Customer Name" not in composed
        assert "Project Name" not in composed
        assert composed == (
            "T\n"
            "\n"
            "\n"
            "Question Category: Cloud General\n"
            "Question: Q?\n"
            "Customer Response: A\n"
            "\n"
            "Provide a clear, actionable reply grounded in the knowledge base."
        )

    def test_project_only_gives_one_context_line(self):
        composed = compose_prompt("T", "Cloud General", "Q?", "A", project_name="Migration")
        assert composed.count("Name:") == 1
        assert composed.startswith("T\n\nProject Name: Migration\n\nQuestion Category: Cloud General")


class TestTemplateSelection:
    @pytest.mark.parametrize(
        "category, expected",
        [
            ("Cloud General", "general"),
            ("AWS Sizing", "sizing"),
            ("cloud MATRIX", "matrix"),
            ("Sizing Matrix", "matrix"),
            ("matrix sizing", "matrix"),
            ("", "general"),
        ],
    )
    def test_keyword_match(self, category, expected):
        assert select_template_key(category) == expected

    def test_both_keywords_resolve_to_matrix_text(self):
        resolver = CategoryResolver([_mapping("Storage Sizing Matrix", "ws")], PROMPTS)
        assert resolver.resolve("Storage Sizing Matrix").template == "MATRIX"


class TestCategoryResolver:
    def test_resolves_workspace_and_template(self):
        resolver = CategoryResolver([_mapping("Cloud Sizing", "aws-ws")], PROMPTS)
        assert resolver.resolve("Cloud Sizing") == Resolution(workspace="aws-ws", template_key="sizing", template="SIZING")

    def test_unmapped_category_is_a_value(self):
        resolver = CategoryResolver([_mapping("Cloud Sizing", "aws-ws")], PROMPTS)
        assert resolver.resolve("cloud sizing") == UnmappedCategory("cloud sizing")
