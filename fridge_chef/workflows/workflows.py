"""Agno workflows exposing the personal chef flows over HTTP.

One single-step Workflow per flow, served by AgentOS:
- analyse-fridge-contents:      image_url -> [{title, quantity}, ...]
- generate-recipe:              {fridge_contents, meal_type, cuisine} -> recipe text
- generate-final-result-image:  recipe text -> data URI (or None)
- personal-chef:                {imageUrl, mealType, cuisine} -> {recipe, resultImage?}

Step executors never raise for pipeline or input errors: they return a failed
StepOutput whose error carries the aggregated stage message.
"""

import json
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

from agno.workflow.step import Step
from agno.workflow.types import StepInput, StepOutput
from agno.workflow.workflow import Workflow
from pydantic import BaseModel, ValidationError

from fridge_chef.flows.errors import PersonalChefError
from fridge_chef.flows.personal_chef import PersonalChef
from fridge_chef.models.models import (
    AnalyseFridgeRequest,
    FridgeContents,
    GenerateRecipeRequest,
    PersonalChefRequest,
)
from fridge_chef.utils.logger import logger

RequestT = TypeVar("RequestT", bound=BaseModel)

StepExecutor = Callable[[StepInput], Awaitable[StepOutput]]


def _decode(value: Any) -> Any:
    """Decode JSON text, leaving anything else (including plain strings) untouched."""
    if isinstance(value, str):
        text = value.strip()
        if text[:1] in ("{", "["):
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return value
    return value


def _coerce_request(value: Any, model: Type[RequestT], scalar_field: Optional[str] = None) -> RequestT:
    """Build a request envelope from a workflow input.

    Accepts an instance of `model`, any other pydantic model, a dict, JSON text,
    or (when `scalar_field` is given) a bare string for that single field.

    Raises:
        ValidationError: The input does not match `model`.
    """
    if isinstance(value, model):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump()

    value = _decode(value)
    if isinstance(value, str) and scalar_field is not None:
        value = {scalar_field: value}
    return model.model_validate(value)


def _failed(error: Exception) -> StepOutput:
    if isinstance(error, ValidationError):
        message = f"invalid input: {error.error_count()} validation error(s): " + "; ".join(
            f"{'.'.join(str(part) for part in detail['loc']) or '<root>'}: {detail['msg']}" for detail in error.errors()
        )
    else:
        message = str(error)
    logger.warning(f"Workflow step failed: {message}")
    return StepOutput(content=message, success=False, error=message, stop=True)


def analyse_fridge_contents_executor(chef: PersonalChef) -> StepExecutor:
    async def analyse_fridge_contents(step_input: StepInput) -> StepOutput:
        try:
            request = _coerce_request(step_input.input, AnalyseFridgeRequest, scalar_field="image_url")
            contents = await chef.analyse_fridge_contents(request.image_url)
        except (ValidationError, PersonalChefError) as e:
            return _failed(e)
        return StepOutput(content=contents.model_dump())

    return analyse_fridge_contents


def generate_recipe_executor(chef: PersonalChef) -> StepExecutor:
    async def generate_recipe(step_input: StepInput) -> StepOutput:
        try:
            value = _decode(step_input.input)
            if isinstance(value, list):
                # Bare fridge contents, no meal preferences
                contents, prefs = FridgeContents.model_validate(value), None
            else:
                request = _coerce_request(value, GenerateRecipeRequest)
                contents, prefs = request.fridge_contents, request.preferences
            recipe = await chef.generate_recipe(contents, prefs)
        except (ValidationError, PersonalChefError) as e:
            return _failed(e)
        return StepOutput(content=recipe)

    return generate_recipe


def generate_final_result_image_executor(chef: PersonalChef) -> StepExecutor:
    async def generate_final_result_image(step_input: StepInput) -> StepOutput:
        value = _decode(step_input.input)
        recipe = value.get("recipe") if isinstance(value, dict) else value
        if not isinstance(recipe, str) or not recipe.strip():
            return _failed(ValueError("invalid input: recipe text is required"))
        return StepOutput(content=await chef.generate_final_result_image(recipe))

    return generate_final_result_image


def personal_chef_executor(chef: PersonalChef) -> StepExecutor:
    async def personal_chef(step_input: StepInput) -> StepOutput:
        try:
            request = _coerce_request(step_input.input, PersonalChefRequest)
            result = await chef.run_request(request)
        except (ValidationError, PersonalChefError) as e:
            return _failed(e)
        return StepOutput(content=result.model_dump(by_alias=True, exclude_none=True))

    return personal_chef


def _single_step_workflow(
    workflow_id: str,
    description: str,
    executor: StepExecutor,
    input_schema: Optional[Type[BaseModel]] = None,
) -> Workflow:
    return Workflow(
        id=workflow_id,
        name=workflow_id,
        description=description,
        input_schema=input_schema,
        steps=[Step(name=executor.__name__, executor=executor)],
    )


def build_workflows(chef: PersonalChef) -> list[Workflow]:
    """Create the four flow workflows around one shared PersonalChef."""
    workflows = [
        _single_step_workflow(
            "analyse-fridge-contents",
            "Tell which items of food can be seen in a fridge photo (http://, https://, gs:// or data: URL)",
            analyse_fridge_contents_executor(chef),
        ),
        _single_step_workflow(
            "generate-recipe",
            "Generate a recipe for a meal type and cuisine from fridge contents",
            generate_recipe_executor(chef),
        ),
        _single_step_workflow(
            "generate-final-result-image",
            "Generate a photo of the final result of a recipe",
            generate_final_result_image_executor(chef),
        ),
        _single_step_workflow(
            "personal-chef",
            "Fridge photo + meal type + cuisine -> recipe and a photo of the final result",
            personal_chef_executor(chef),
            input_schema=PersonalChefRequest,
        ),
    ]
    logger.info(f"✓ Registered {len(workflows)} workflows: {', '.join(w.name for w in workflows)}")
    return workflows
