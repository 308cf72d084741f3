"""Illustration stage: recipe text -> inline image of the final dish.

Cosmetic and fail-soft. Any failure (provider error, timeout, no media in the
response) is logged as a warning and illustrate() returns None.
"""

from typing import Optional

from google import genai
from google.genai import types

from fridge_chef.flows.errors import IllustrationError
from fridge_chef.flows.image_fetcher import FetchedImage
from fridge_chef.prompts.prompts import PromptTemplate, render_prompt
from fridge_chef.utils.config import Config, StagePolicy
from fridge_chef.utils.logger import logger
from fridge_chef.utils.resilience import call_with_policy, safe_execute_async


class Illustrator:
    """Generate a photo of the finished recipe."""

    def __init__(
        self,
        client: genai.Client,
        template: PromptTemplate,
        model: str,
        max_prompt_chars: int = 1500,
        policy: Optional[StagePolicy] = None,
        enabled: bool = True,
    ) -> None:
        self.client = client
        self.template = template
        self.model = model
        self.max_prompt_chars = max_prompt_chars
        self.policy = policy or StagePolicy(max_attempts=1, timeout_seconds=90.0)
        self.enabled = enabled

    @classmethod
    def from_config(cls, config: Config, client: genai.Client, template: PromptTemplate) -> "Illustrator":
        return cls(
            client=client,
            template=template,
            model=config.ILLUSTRATION_MODEL,
            max_prompt_chars=config.ILLUSTRATION_PROMPT_MAX_CHARS,
            policy=config.illustration_policy(),
            enabled=config.ENABLE_ILLUSTRATION,
        )

    def build_prompt(self, recipe_text: str) -> str:
        recipe = recipe_text.strip()
        if len(recipe) > self.max_prompt_chars:
            recipe = recipe[: self.max_prompt_chars].rstrip()
        return render_prompt(self.template, {"recipe": recipe})

    async def illustrate(self, recipe_text: str) -> Optional[str]:
        """Return a data URI of the generated image, or None when disabled or on failure."""
        if not self.enabled:
            logger.debug("Illustration disabled via ENABLE_ILLUSTRATION=false")
            return None

        return await safe_execute_async(
            self._generate(recipe_text),
            "Generate final result image",
            log_level="warning",
            default_return=None,
        )

    async def _generate(self, recipe_text: str) -> str:
        prompt = self.build_prompt(recipe_text)

        async def _call_image_model() -> str:
            response = await self.client.aio.models.generate_images(
                model=self.model,
                prompt=prompt,
                config=types.GenerateImagesConfig(number_of_images=1),
            )
            generated = response.generated_images or []
            image = generated[0].image if generated else None
            if image is None or not image.image_bytes:
                raise IllustrationError(f"Image model returned no media ({self.model})")
            return FetchedImage(image.image_bytes, image.mime_type or "image/png").to_data_uri()

        try:
            data_uri = await call_with_policy(_call_image_model, self.policy, f"Illustrate recipe ({self.model})")
        except IllustrationError:
            raise
        except Exception as e:
            raise IllustrationError(f"Image generation failed ({self.model})", cause=e) from e

        logger.debug(f"Final result image generated: {len(data_uri)} chars")
        return data_uri
