"""Recipe stage: FridgeContents + MealPreferences -> recipe text."""

from typing import Iterable, Optional

from google import genai
from google.genai import types
from jinja2 import TemplateError

from fridge_chef.flows.errors import GenerationError
from fridge_chef.models.models import FridgeItem, MealPreferences
from fridge_chef.prompts.prompts import PromptTemplate, render_prompt
from fridge_chef.utils.config import Config, StagePolicy
from fridge_chef.utils.logger import logger
from fridge_chef.utils.resilience import call_with_policy


class RecipeGenerator:
    """Write a recipe that can be cooked with the detected fridge contents."""

    def __init__(
        self,
        client: genai.Client,
        template: PromptTemplate,
        model: str,
        temperature: float = 0.1,
        max_output_tokens: int = 2048,
        policy: Optional[StagePolicy] = None,
    ) -> None:
        self.client = client
        self.template = template
        self.model = model
        self.policy = policy or StagePolicy()
        self.generation_config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )

    @classmethod
    def from_config(cls, config: Config, client: genai.Client, template: PromptTemplate) -> "RecipeGenerator":
        return cls(
            client=client,
            template=template,
            model=config.RECIPE_MODEL,
            temperature=config.RECIPE_TEMPERATURE,
            max_output_tokens=config.MAX_OUTPUT_TOKENS,
            policy=config.recipe_policy(),
        )

    def build_prompt(self, contents: Iterable[FridgeItem], prefs: Optional[MealPreferences] = None) -> str:
        """Render the recipe prompt. An empty contents list renders the pantry-staples fallback."""
        return render_prompt(
            self.template,
            {
                "contents": list(contents),
                "meal_type": prefs.meal_type if prefs else None,
                "cuisine": prefs.cuisine if prefs else None,
            },
        )

    async def generate_recipe(self, contents: Iterable[FridgeItem], prefs: Optional[MealPreferences] = None) -> str:
        """Generate free-form recipe text.

        Raises:
            GenerationError: Prompt rendering failed, the model call failed after
                the policy's retries, or the model returned no text.
        """
        try:
            prompt = self.build_prompt(contents, prefs)
        except TemplateError as e:
            raise GenerationError("Could not render the recipe prompt", cause=e) from e

        async def _generate() -> Optional[str]:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=self.generation_config,
            )
            return response.text

        try:
            text = await call_with_policy(_generate, self.policy, f"Generate recipe ({self.model})")
        except Exception as e:
            raise GenerationError(f"Recipe model call failed ({self.model})", cause=e) from e

        if not text or not text.strip():
            raise GenerationError(f"Recipe model returned no text ({self.model})")

        logger.debug(f"Recipe generated: {len(text)} chars")
        return text.strip()
