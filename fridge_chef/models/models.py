"""Data models and schemas for Fridge Chef.

Defines Pydantic models for the fridge contents contract, the flow request
envelopes, and the pipeline result. The same field definitions produce the
response schema requested from the vision model, so what the model is asked
for and what the validator accepts cannot drift apart.

Request envelopes accept snake_case or camelCase keys (image_url / imageUrl).

Validation at model boundaries returns a tagged result (Valid / Invalid)
instead of raising, callers decide what a failure means for their stage.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Generic, Iterator, List, Literal, Optional, TypeVar, Union, Annotated

from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class FridgeItem(BaseModel):
    """An item of food that can be seen in the fridge."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    title: Annotated[str, Field(min_length=1, description="The title of the item.")]
    quantity: Annotated[int, Field(ge=0, description="How many of this item can be seen")]


class FridgeContents(RootModel[List[FridgeItem]]):
    """The items of food that can be seen in the fridge.

    Order is the model's enumeration order. Duplicate titles are kept as
    separate entries. May be empty.
    """

    root: List[FridgeItem] = Field(default_factory=list)

    def __iter__(self) -> Iterator[FridgeItem]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> FridgeItem:
        return self.root[index]

    def titles(self) -> list[str]:
        return [item.title for item in self.root]


class MealPreferences(BaseModel):
    """Meal type and cuisine requested by the caller. Open-ended, only checked for non-emptiness."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    meal_type: Annotated[str, Field(min_length=1, description="e.g. breakfast, lunch, dinner, dessert")]
    cuisine: Annotated[str, Field(min_length=1, description="e.g. italian, korean, junk food")]


class AnalyseFridgeRequest(BaseModel):
    """Input of the analyse-fridge-contents flow."""

    model_config = ConfigDict(str_strip_whitespace=True, alias_generator=to_camel, populate_by_name=True)

    image_url: Annotated[
        str,
        Field(min_length=1, description="Provide a URL to an image (http://, https://, gs:// or data:)"),
    ]


class GenerateRecipeRequest(BaseModel):
    """Input of the generate-recipe flow."""

    model_config = ConfigDict(str_strip_whitespace=True, alias_generator=to_camel, populate_by_name=True)

    fridge_contents: FridgeContents
    meal_type: Annotated[str, Field(min_length=1)]
    cuisine: Annotated[str, Field(min_length=1)]

    @property
    def preferences(self) -> MealPreferences:
        return MealPreferences(meal_type=self.meal_type, cuisine=self.cuisine)


class PersonalChefRequest(BaseModel):
    """Input of the personal-chef flow: image reference plus meal preferences."""

    model_config = ConfigDict(str_strip_whitespace=True, alias_generator=to_camel, populate_by_name=True)

    image_url: Annotated[
        str,
        Field(min_length=1, description="Provide a URL to an image (http://, https://, gs:// or data:)"),
    ]
    meal_type: Annotated[str, Field(min_length=1)]
    cuisine: Annotated[str, Field(min_length=1)]

    @property
    def preferences(self) -> MealPreferences:
        return MealPreferences(meal_type=self.meal_type, cuisine=self.cuisine)


class RecipeResult(BaseModel):
    """Output of the personal-chef flow. Never persisted.

    Serialized on the wire as {recipe, resultImage?}: dump with by_alias=True.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    recipe: Annotated[str, Field(min_length=1, description="Free-form recipe text")]
    result_image: Annotated[
        Optional[str],
        Field(None, description="Inline image (data URI) of the final dish, absent when illustration failed"),
    ]


# ============================================================================
# Validation results
# ============================================================================


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T
    ok: Literal[True] = True


@dataclass(frozen=True)
class Invalid:
    errors: list[str] = field(default_factory=list)
    raw_text: str = ""
    ok: Literal[False] = False


ValidationResult = Union[Valid[T], Invalid]


def _format_errors(error: ValidationError) -> list[str]:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "<root>"
        messages.append(f"{location}: {detail['msg']}")
    return messages


def validate_fridge_item(data: Any) -> ValidationResult[FridgeItem]:
    """Structurally validate one item: requires a non-empty string title and a numeric quantity."""
    try:
        return Valid(FridgeItem.model_validate(data))
    except ValidationError as e:
        return Invalid(errors=_format_errors(e))


def validate_fridge_contents(data: Any) -> ValidationResult[FridgeContents]:
    """Validate a decoded JSON value against the fridge contents schema.

    Any element failing item validation rejects the whole list.
    """
    if not isinstance(data, list):
        return Invalid(errors=[f"<root>: expected a JSON array of items, got {type(data).__name__}"])
    try:
        return Valid(FridgeContents.model_validate(data))
    except ValidationError as e:
        return Invalid(errors=_format_errors(e))


def parse_fridge_contents(response_text: str) -> ValidationResult[FridgeContents]:
    """Parse model output text into validated FridgeContents.

    Tries, in order:
    1. json.loads() on the full response
    2. Regex extraction of the outermost JSON array from surrounding text

    Returns:
        Valid(FridgeContents) or Invalid carrying the reasons and the raw text.
    """
    text = (response_text or "").strip()
    if not text:
        return Invalid(errors=["empty response"], raw_text=response_text or "")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\[.*\]", text, re.DOTALL)
        if not match:
            return Invalid(errors=["no JSON array found in response"], raw_text=text)
        try:
            decoded = json.loads(match.group())
        except json.JSONDecodeError as e:
            return Invalid(errors=[f"malformed JSON: {e.msg}"], raw_text=text)

    result = validate_fridge_contents(decoded)
    if isinstance(result, Invalid):
        return Invalid(errors=result.errors, raw_text=text)
    return result


def fridge_contents_response_schema() -> types.Schema:
    """Build the Gemini response schema for FridgeContents from the pydantic field definitions."""
    fields = FridgeItem.model_fields
    return types.Schema(
        type=types.Type.ARRAY,
        description=FridgeContents.__doc__.strip().splitlines()[0],
        items=types.Schema(
            type=types.Type.OBJECT,
            description=FridgeItem.__doc__.strip(),
            properties={
                "title": types.Schema(type=types.Type.STRING, description=fields["title"].description),
                "quantity": types.Schema(
                    type=types.Type.INTEGER,
                    description=fields["quantity"].description,
                    minimum=0,
                ),
            },
            required=["title", "quantity"],
            property_ordering=["title", "quantity"],
        ),
    )
