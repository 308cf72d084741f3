"""Orchestrator for the personal chef pipeline.

fetch -> extract -> recipe -> (optional) illustrate, strictly sequential.
Each run is stateless; concurrent runs share only the model-call limiter.
Every stage transition is logged with the run id.
"""

import asyncio
import uuid
from typing import Iterable, Optional

from google import genai
from google.cloud import storage

from fridge_chef.flows.errors import PersonalChefError
from fridge_chef.flows.extraction import FridgeAnalyser
from fridge_chef.flows.illustration import Illustrator
from fridge_chef.flows.image_fetcher import ImageFetcher
from fridge_chef.flows.recipe import RecipeGenerator
from fridge_chef.models.models import (
    FridgeContents,
    FridgeItem,
    MealPreferences,
    PersonalChefRequest,
    RecipeResult,
)
from fridge_chef.prompts.prompts import load_prompt_templates
from fridge_chef.utils.clients import build_genai_client
from fridge_chef.utils.config import Config
from fridge_chef.utils.logger import run_logger


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


class PersonalChef:
    """Turn a fridge photo into a recipe, and optionally a picture of the result."""

    def __init__(
        self,
        fetcher: ImageFetcher,
        analyser: FridgeAnalyser,
        recipe_generator: RecipeGenerator,
        illustrator: Optional[Illustrator] = None,
        max_concurrent_model_calls: int = 4,
    ) -> None:
        self.fetcher = fetcher
        self.analyser = analyser
        self.recipe_generator = recipe_generator
        self.illustrator = illustrator
        self._model_calls = asyncio.Semaphore(max_concurrent_model_calls)

    @classmethod
    def from_config(
        cls,
        config: Config,
        genai_client: Optional[genai.Client] = None,
        storage_client: Optional[storage.Client] = None,
    ) -> "PersonalChef":
        """Wire every stage from one Config.

        Args:
            config: Validated configuration.
            genai_client: Shared Gen AI client. Built from config when omitted.
            storage_client: Cloud Storage client. Built lazily on first gs:// fetch when omitted.
        """
        client = genai_client or build_genai_client(config)
        templates = load_prompt_templates(config.PROMPTS_DIR)

        return cls(
            fetcher=ImageFetcher(config, storage_client=storage_client),
            analyser=FridgeAnalyser.from_config(config, client, templates.analyse_fridge),
            recipe_generator=RecipeGenerator.from_config(config, client, templates.generate_recipe),
            illustrator=Illustrator.from_config(config, client, templates.final_result_image),
            max_concurrent_model_calls=config.MAX_CONCURRENT_MODEL_CALLS,
        )

    def _log(self, run_id: str, stage: str, message: str) -> None:
        run_logger(run_id, stage).info(message)

    async def analyse_fridge_contents(self, image_reference: str, run_id: Optional[str] = None) -> FridgeContents:
        """Fetch the image and enumerate its fridge contents.

        Raises:
            FetchError: The image could not be resolved. No model is called.
            ExtractionError: The vision model failed or answered off-schema.
        """
        run_id = run_id or new_run_id()

        self._log(run_id, "fetch", f"Fetching image: {image_reference[:80]}")
        image = await self.fetcher.fetch(image_reference)
        self._log(run_id, "fetch", f"Image ready: {image.content_type}, {len(image.data) / 1024:.1f}KB")

        self._log(run_id, "extraction", "Analysing fridge contents")
        async with self._model_calls:
            contents = await self.analyser.extract(image.to_data_uri())
        self._log(run_id, "extraction", f"Found {len(contents)} item(s)")
        return contents

    async def generate_recipe(
        self,
        contents: Iterable[FridgeItem],
        prefs: Optional[MealPreferences] = None,
        run_id: Optional[str] = None,
    ) -> str:
        """Generate recipe text for `contents`. Raises GenerationError."""
        run_id = run_id or new_run_id()
        items = list(contents)

        if prefs is not None:
            self._log(run_id, "recipe", f"Generating {prefs.meal_type} recipe ({prefs.cuisine}) from {len(items)} item(s)")
        else:
            self._log(run_id, "recipe", f"Generating recipe from {len(items)} item(s)")
        async with self._model_calls:
            recipe = await self.recipe_generator.generate_recipe(items, prefs)
        self._log(run_id, "recipe", f"Recipe ready ({len(recipe)} chars)")
        return recipe

    async def generate_final_result_image(self, recipe: str, run_id: Optional[str] = None) -> Optional[str]:
        """Illustrate `recipe`. Never raises; None when illustration is off or failed."""
        if self.illustrator is None:
            return None
        run_id = run_id or new_run_id()

        self._log(run_id, "illustration", "Generating final result image")
        async with self._model_calls:
            image = await self.illustrator.illustrate(recipe)
        self._log(run_id, "illustration", "Final result image ready" if image else "No final result image")
        return image

    async def run(self, image_reference: str, prefs: Optional[MealPreferences] = None) -> RecipeResult:
        """Run the full pipeline for one fridge photo.

        Returns:
            RecipeResult with the recipe text and, when illustration succeeded, a data URI image.

        Raises:
            PersonalChefError: The first fetch, extraction or recipe failure.
        """
        run_id = new_run_id()
        self._log(run_id, "pipeline", "Personal chef run started")

        try:
            contents = await self.analyse_fridge_contents(image_reference, run_id=run_id)
            recipe = await self.generate_recipe(contents, prefs, run_id=run_id)
        except PersonalChefError as e:
            run_logger(run_id, e.stage).error(f"Personal chef run failed: {e}")
            raise

        result_image = await self.generate_final_result_image(recipe, run_id=run_id)

        self._log(run_id, "pipeline", "Personal chef run complete")
        return RecipeResult(recipe=recipe, result_image=result_image)

    async def run_request(self, request: PersonalChefRequest) -> RecipeResult:
        return await self.run(request.image_url, request.preferences)
