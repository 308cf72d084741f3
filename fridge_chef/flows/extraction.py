"""Extraction stage: image -> FridgeContents via a vision model.

One multimodal call per attempt: the analyse-fridge instruction plus the inline
image, JSON output constrained by the fridge contents response schema. The
answer is parsed and validated with the schema registry; output that fails
validation is a hard failure (retried only with RETRY_ON_INVALID_OUTPUT=true).
"""

from typing import Optional

from google import genai
from google.genai import types

from fridge_chef.flows.errors import ExtractionError
from fridge_chef.flows.image_fetcher import FetchedImage
from fridge_chef.models.models import (
    FridgeContents,
    Invalid,
    fridge_contents_response_schema,
    parse_fridge_contents,
)
from fridge_chef.prompts.prompts import PromptTemplate
from fridge_chef.utils.config import Config, StagePolicy
from fridge_chef.utils.logger import logger
from fridge_chef.utils.resilience import InvalidModelOutput, call_with_policy


class FridgeAnalyser:
    """Enumerate the food items visible in a fridge photo."""

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
            response_mime_type="application/json",
            response_schema=fridge_contents_response_schema(),
        )

    @classmethod
    def from_config(cls, config: Config, client: genai.Client, template: PromptTemplate) -> "FridgeAnalyser":
        return cls(
            client=client,
            template=template,
            model=config.IMAGE_DETECTION_MODEL,
            temperature=config.EXTRACTION_TEMPERATURE,
            max_output_tokens=config.MAX_OUTPUT_TOKENS,
            policy=config.extraction_policy(),
        )

    async def extract(self, image_data_uri: str) -> FridgeContents:
        """Ask the vision model which items of food are in the image.

        Args:
            image_data_uri: Inline image, data:<content_type>;base64,<payload>.

        Returns:
            Validated FridgeContents, possibly empty.

        Raises:
            ExtractionError: Malformed data URI, model call failure after the
                policy's retries, or output that fails schema validation.
        """
        try:
            image = FetchedImage.from_data_uri(image_data_uri)
        except ValueError as e:
            raise ExtractionError("Malformed image data URI", cause=e) from e

        prompt = self.template.render()

        async def _analyse() -> FridgeContents:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[prompt, types.Part.from_bytes(data=image.data, mime_type=image.content_type)],
                config=self.generation_config,
            )
            result = parse_fridge_contents(response.text)
            if isinstance(result, Invalid):
                logger.debug(f"Invalid fridge contents from {self.model}: {result.errors}; raw: {result.raw_text[:200]}")
                raise InvalidModelOutput(result.errors, result.raw_text)
            return result.value

        try:
            contents = await call_with_policy(_analyse, self.policy, f"Analyse fridge contents ({self.model})")
        except InvalidModelOutput as e:
            raise ExtractionError(f"Model output does not match the fridge contents schema: {e}", cause=e) from e
        except Exception as e:
            raise ExtractionError(f"Vision model call failed ({self.model})", cause=e) from e

        logger.debug(f"Detected {len(contents)} item(s): {', '.join(contents.titles()) or 'none'}")
        return contents
