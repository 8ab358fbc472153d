# kb_discovery/category_resolver.py

from dataclasses import dataclass
from typing import Iterable, Union

from kb_discovery.entities import CategoryMapping, PromptSettings

TEMPLATE_GENERAL = "general"
TEMPLATE_SIZING = "sizing"
TEMPLATE_MATRIX = "matrix"


@dataclass(frozen=True)
class UnmappedCategory:
    """Returned, not raised: the category has no workspace mapping."""

    category: str


@dataclass(frozen=True)
class Resolution:
    workspace: str
    template_key: str
    template: str


def select_template_key(category: str) -> str:
    # matrix wins over sizing when a category names both
    lowered = (category or "").lower()
    if "matrix" in lowered:
        return TEMPLATE_MATRIX
    if "sizing" in lowered:
        return TEMPLATE_SIZING
    return TEMPLATE_GENERAL


def resolve_workspace(category: str, mappings: Iterable[CategoryMapping]) -> Union[str, UnmappedCategory]:
    for mapping in mappings:
        if mapping.category == category:
            return mapping.workspace_name
    return UnmappedCategory(category)


class CategoryResolver:
    def __init__(self, mappings: Iterable[CategoryMapping], prompts: PromptSettings):
        self.mappings = list(mappings)
        self.prompts = prompts

    def workspace_for(self, category: str) -> Union[str, UnmappedCategory]:
        return resolve_workspace(category, self.mappings)

    def resolve(self, category: str) -> Union[Resolution, UnmappedCategory]:
        workspace = self.workspace_for(category)
        if isinstance(workspace, UnmappedCategory):
            return workspace
        key = select_template_key(category)
        return Resolution(workspace=workspace, template_key=key, template=getattr(self.prompts, key))
