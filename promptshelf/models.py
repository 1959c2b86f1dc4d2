"""Data model shared by the search, filter and suggestion components.

Items are a tagged union keyed on ``kind``. Raw mappings coming from the
application (camelCase keys, ``snippetTags`` on templates and workflows) are
accepted and mapped onto the canonical fields here, so the rest of the
package only ever sees ``item.tags``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Sequence, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)


class ItemType(str, Enum):
    """Kinds of items managed by the library."""

    TEMPLATE = "template"
    WORKFLOW = "workflow"
    SNIPPET = "snippet"

    @property
    def plural(self) -> str:
        return f"{self.value}s"

    @classmethod
    def coerce(cls, value: Any) -> Optional["ItemType"]:
        """Map ``template``/``templates``/ItemType to an ItemType, else None."""
        if isinstance(value, ItemType):
            return value
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower()
        if cleaned.endswith("s"):
            cleaned = cleaned[:-1]
        try:
            return cls(cleaned)
        except ValueError:
            return None


class FilterMode(str, Enum):
    """Tag filter semantics."""

    AND = "AND"
    OR = "OR"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _clean_tags(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    tags = []
    for tag in value:
        if isinstance(tag, str) and tag.strip():
            tags.append(tag.strip())
    return tags


class WorkflowStep(BaseModel):
    """A single step of a workflow (only the searchable parts)."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    description: str = ""

    @field_validator("name", "description", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value)


class BaseItem(BaseModel):
    """Fields common to every item kind."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    description: str = ""
    content: str = ""
    category: str = ""
    favorite: bool = False
    tags: List[str] = Field(default_factory=list)
    created_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt", "created")
    )
    updated_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("updated_at", "updatedAt")
    )
    last_used: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("last_used", "lastUsed")
    )

    @field_validator("id", "name", "description", "content", "category", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("favorite", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> List[str]:
        return _clean_tags(value)

    @field_validator("created_at", "updated_at", "last_used", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)

    @property
    def item_type(self) -> ItemType:
        return ItemType(self.kind)  # type: ignore[attr-defined]

    @property
    def has_content(self) -> bool:
        return bool(self.content.strip())


def _prefer_snippet_tags(data: Any) -> Any:
    # Templates and workflows store their tags under ``snippetTags``
    if isinstance(data, dict) and "snippetTags" in data:
        data = dict(data)
        data["tags"] = data.pop("snippetTags")
    return data


class TemplateItem(BaseItem):
    kind: Literal["template"] = "template"
    variables: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _snippet_tags(cls, data: Any) -> Any:
        return _prefer_snippet_tags(data)

    @field_validator("variables", mode="before")
    @classmethod
    def _variables(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple)):
            return []
        names = []
        for var in value:
            if isinstance(var, dict):
                var = var.get("name")
            if isinstance(var, str) and var:
                names.append(var)
        return names


class WorkflowItem(BaseItem):
    kind: Literal["workflow"] = "workflow"
    steps: List[WorkflowStep] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _snippet_tags(cls, data: Any) -> Any:
        return _prefer_snippet_tags(data)

    @field_validator("steps", mode="before")
    @classmethod
    def _steps(cls, value: Any) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            return []
        return [{"name": step} if isinstance(step, str) else step for step in value if step]


class SnippetItem(BaseItem):
    kind: Literal["snippet"] = "snippet"
    language: str = ""

    @field_validator("language", mode="before")
    @classmethod
    def _language(cls, value: Any) -> str:
        return _as_text(value)


Item = Annotated[Union[TemplateItem, WorkflowItem, SnippetItem], Field(discriminator="kind")]

_ITEM_ADAPTER: TypeAdapter = TypeAdapter(Item)

ItemLike = Union[BaseItem, Dict[str, Any]]


def parse_item(data: ItemLike, item_type: Union[ItemType, str, None] = None) -> BaseItem:
    """Turn a raw mapping into a typed item.

    The kind is taken from the mapping's ``kind`` (or legacy ``type``) key,
    falling back to ``item_type``.

    Raises:
        ValueError: If no kind can be determined
        pydantic.ValidationError: If the mapping does not describe an item
    """
    if isinstance(data, BaseItem):
        return data
    kind = ItemType.coerce(data.get("kind")) or ItemType.coerce(data.get("type"))
    kind = kind or ItemType.coerce(item_type)
    if kind is None:
        raise ValueError(f"Cannot determine kind of item {data.get('id')!r}")
    return _ITEM_ADAPTER.validate_python({**data, "kind": kind.value})


def parse_items(
    items: Optional[Iterable[ItemLike]], item_type: Union[ItemType, str, None] = None
) -> List[BaseItem]:
    """Parse a collection; an already-typed list is returned as-is."""
    if not items:
        return []
    if isinstance(items, list) and all(isinstance(item, BaseItem) for item in items):
        return items
    return [parse_item(item, item_type) for item in items]


class FilterConfig(BaseModel):
    """User-selected filters.

    Every field is normalized instead of rejected: an unknown mode becomes
    OR, a non-list tag selection becomes empty, flags use truthiness.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    selected_tags: List[str] = Field(default_factory=list, alias="selectedTags")
    filter_mode: FilterMode = Field(default=FilterMode.OR, alias="filterMode")
    category: str = "all"
    favorite_only: bool = Field(default=False, alias="favoriteOnly")
    has_content: bool = Field(default=False, alias="hasContent")
    type: str = "all"
    is_expanded: bool = Field(default=False, alias="isExpanded")

    @field_validator("selected_tags", mode="before")
    @classmethod
    def _selected_tags(cls, value: Any) -> List[str]:
        if isinstance(value, (set, frozenset)):
            value = sorted(t for t in value if isinstance(t, str))
        seen = set()
        tags = []
        for tag in _clean_tags(value):
            if tag not in seen:
                seen.add(tag)
                tags.append(tag)
        return tags

    @field_validator("filter_mode", mode="before")
    @classmethod
    def _filter_mode(cls, value: Any) -> FilterMode:
        if isinstance(value, FilterMode):
            return value
        if isinstance(value, str) and value.strip().upper() in ("AND", "OR"):
            return FilterMode(value.strip().upper())
        return FilterMode.OR

    @field_validator("favorite_only", "has_content", "is_expanded", mode="before")
    @classmethod
    def _flags(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("category", "type", mode="before")
    @classmethod
    def _choice(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "all"
        return value.strip()

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using the persisted (camelCase) key names."""
        return self.model_dump(mode="json", by_alias=True)


class TagFrequencyRecord(BaseModel):
    """Usage count of one normalized tag within a collection."""

    tag: str
    count: int = Field(default=0, ge=0)
    percentage: int = Field(default=0, ge=0, le=100)


@dataclass
class RankedResult:
    """An item annotated with its relevance to a query."""

    item: BaseItem
    relevance_score: float

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def name(self) -> str:
        return self.item.name

    def to_dict(self) -> Dict[str, Any]:
        """Item fields plus ``relevanceScore``."""
        data = self.item.model_dump(mode="json")
        data["relevanceScore"] = round(self.relevance_score, 4)
        return data


def items_of(results: Sequence[Union[RankedResult, BaseItem]]) -> List[BaseItem]:
    """Strip ranking annotations."""
    return [r.item if isinstance(r, RankedResult) else r for r in results]
