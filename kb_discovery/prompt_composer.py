# kb_discovery/prompt_composer.py

from typing import Optional

from kb_discovery.discovery_prompts import CLOSING_INSTRUCTION


def compose_prompt(
    template: str,
    category: str,
    question: str,
    answer: str,
    customer_name: Optional[str] = None,
    project_name: Optional[str] = None,
) -> str:
    """
    Builds the exact message sent to the knowledge base:

        <template>

        Customer Name: ...        (only when non-blank)
        Project Name: ...         (only when non-blank)

        Question Category: ...
        Question: ...
        Customer Response: ...

        Provide a clear, actionable reply grounded in the knowledge base.

    Blank-line placement is part of the contract; do not reformat.
    """
    customer = (customer_name or "").strip()
    project = (project_name or "").strip()
    context_lines = "\n".join(
        line for line in (
            f"Customer Name: {customer}" if customer else "",
            f"Project Name: {project}" if project else "",
        ) if line
    )

    parts = [
        (template or "").strip(),
        f"\n{context_lines}" if context_lines else "",
        f"\nQuestion Category: {category}",
        f"Question: {question}",
        f"Customer Response: {answer}",
        f"\n{CLOSING_INSTRUCTION}",
    ]
    return "\n".join(parts).strip()
