"""Schema.org JSON-LD recipe extraction.

JSON-LD blocks are first classified into a small node tree so the search for a
Recipe only has to deal with the shapes recipe sites actually publish: a bare
Recipe object, a page object wrapping one under ``mainEntity`` or
``mainEntityOfPage``, an ``@graph`` container, or a plain list of any of these.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Union

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from recipe_importer.app.services.url_parsing.extractors.base import DocumentExtractor
from recipe_importer.app.services.url_parsing.models import (
    ExtractionResult,
    ExtractionSuccess,
    FetchedDocument,
    ImportErrorCode,
    RecipeAttributes,
    failure,
)
from recipe_importer.app.services.url_parsing.parsing_utils import (
    extract_image,
    normalize_text_list,
    parse_iso8601_duration,
    parse_servings,
)

logger = logging.getLogger(__name__)

_SCHEMA_RECIPE_URL = re.compile(r"\Ahttps?://schema\.org/Recipe\Z")
_WRAPPER_KEYS = ("mainEntity", "mainEntityOfPage")


class TextNode(BaseModel):
    value: str


class OpaqueNode(BaseModel):
    """Any value that cannot contain a Recipe (numbers, untyped objects...)."""


class RecipeNode(BaseModel):
    data: Dict[str, Any]


class MainEntityNode(BaseModel):
    entities: List["JsonLdNode"] = Field(default_factory=list)


class GraphNode(BaseModel):
    items: List["JsonLdNode"] = Field(default_factory=list)


class ListNode(BaseModel):
    items: List["JsonLdNode"] = Field(default_factory=list)


JsonLdNode = Union[TextNode, RecipeNode, MainEntityNode, GraphNode, ListNode, OpaqueNode]

MainEntityNode.model_rebuild()
GraphNode.model_rebuild()
ListNode.model_rebuild()


def has_type(declared, name: str) -> bool:
    """True when @type, given as a string or a list, names the type."""
    types = declared if isinstance(declared, list) else [declared]
    return name in types


def is_recipe_type(declared) -> bool:
    types = declared if isinstance(declared, list) else [declared]
    return any(t == "Recipe" or (isinstance(t, str) and _SCHEMA_RECIPE_URL.match(t)) for t in types)


def classify(value) -> JsonLdNode:
    """Turn parsed JSON into the node tree searched by find_recipes."""
    if isinstance(value, str):
        return TextNode(value=value)
    if isinstance(value, list):
        return ListNode(items=[classify(item) for item in value])
    if not isinstance(value, dict):
        return OpaqueNode()

    if is_recipe_type(value.get("@type")):
        return RecipeNode(data=value)

    children: List[JsonLdNode] = []
    wrapped = [value[key] for key in _WRAPPER_KEYS if isinstance(value.get(key), dict)]
    if wrapped:
        children.append(MainEntityNode(entities=[classify(entity) for entity in wrapped]))
    graph = value.get("@graph")
    if isinstance(graph, list):
        children.append(GraphNode(items=[classify(item) for item in graph]))

    if not children:
        return OpaqueNode()
    if len(children) == 1:
        return children[0]
    return ListNode(items=children)


def find_recipes(node: JsonLdNode) -> Iterator[Dict[str, Any]]:
    """Yield Recipe objects depth-first, in document order."""
    if isinstance(node, RecipeNode):
        yield node.data
    elif isinstance(node, MainEntityNode):
        for entity in node.entities:
            yield from find_recipes(entity)
    elif isinstance(node, (GraphNode, ListNode)):
        for item in node.items:
            yield from find_recipes(item)


def _list_item_text(list_item: Dict[str, Any]) -> str:
    item = list_item.get("item")
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return str(item.get("text") or "")
    return str(list_item.get("name") or "")


def _instruction_texts(entry) -> List[str]:
    if isinstance(entry, str):
        return [entry]
    if not isinstance(entry, dict):
        return []
    entry_type = entry.get("@type")
    if has_type(entry_type, "HowToSection"):
        steps = entry.get("itemListElement") or []
        if not isinstance(steps, list):
            steps = [steps]
        texts: List[str] = []
        for step in steps:
            texts.extend(_instruction_texts(step))
        return texts
    if has_type(entry_type, "ListItem"):
        return [_list_item_text(entry)]
    return [str(entry.get("text") or "")]


def extract_instructions(raw) -> List[str]:
    instructions = raw if raw is not None else []
    if isinstance(instructions, dict) and has_type(instructions.get("@type"), "ItemList"):
        instructions = instructions.get("itemListElement") or []
    if not isinstance(instructions, list):
        instructions = [instructions]

    steps: List[str] = []
    for entry in instructions:
        steps.extend(_instruction_texts(entry))
    return normalize_text_list(steps)


def extract_ingredients(recipe: Dict[str, Any]) -> List[str]:
    raw = recipe.get("recipeIngredient")
    if raw is None:
        raw = recipe.get("ingredients")
    return normalize_text_list(raw)


def build_attributes(recipe: Dict[str, Any], source_url: Optional[str]) -> Optional[RecipeAttributes]:
    name = str(recipe.get("name") or "").strip()
    if not name:
        return None
    description = recipe.get("description")
    return RecipeAttributes(
        name=name,
        ingredients=extract_ingredients(recipe),
        instructions=extract_instructions(recipe.get("recipeInstructions")),
        prep_time_minutes=parse_iso8601_duration(recipe.get("prepTime")),
        cook_time_minutes=parse_iso8601_duration(recipe.get("cookTime")),
        servings=parse_servings(recipe.get("recipeYield")),
        notes=description if isinstance(description, str) else None,
        source_url=source_url,
    )


def _json_ld_blocks(html: str) -> Iterator[Any]:
    soup = BeautifulSoup(html, "lxml")
    scripts = soup.find_all("script", attrs={"type": "application/ld+json"})
    logger.debug("Found %d JSON-LD script blocks", len(scripts))
    for idx, script in enumerate(scripts):
        raw_json = script.string or script.get_text()
        if not raw_json or not raw_json.strip():
            continue
        try:
            yield json.loads(raw_json)
        except json.JSONDecodeError as exc:
            logger.info("JSON-LD block %d failed to parse: %s", idx, exc)
            continue


def extract_recipe_from_schema_org(html: str, source_url: Optional[str]) -> ExtractionResult:
    """Extract the first named schema.org Recipe embedded in an HTML page."""
    for data in _json_ld_blocks(html or ""):
        for recipe in find_recipes(classify(data)):
            attributes = build_attributes(recipe, source_url)
            if attributes is None:
                logger.debug("Recipe candidate without a name, skipping")
                continue
            return ExtractionSuccess(
                attributes=attributes,
                cover_image_url=extract_image(recipe.get("image")),
                strategy="schema_org_json_ld",
            )
    return failure(ImportErrorCode.NO_JSON_LD, "No JSON-LD recipe data found")


class SchemaOrgExtractor(DocumentExtractor):
    name = "schema_org_json_ld"

    async def extract(self, document: FetchedDocument, source_url: str) -> ExtractionResult:
        return extract_recipe_from_schema_org(document.text, source_url)
