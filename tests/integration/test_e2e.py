"""End-to-end integration tests for the personal chef pipeline.

Runs the real flows against Gemini with a fridge photo taken from, in order:
- TEST_FRIDGE_IMAGE_URL (http://, https:// or gs://)
- images/fridge.jpg in the project root (sent as a data URI)
"""

import base64
import os
from pathlib import Path

import pytest

from fridge_chef.flows.errors import FetchError
from fridge_chef.flows.personal_chef import PersonalChef
from fridge_chef.models.models import MealPreferences
from fridge_chef.utils.config import Config
from fridge_chef.utils.logger import logger

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def config() -> Config:
    config = Config()
    config.validate()
    return config


@pytest.fixture(scope="module")
def chef(config) -> PersonalChef:
    logger.info("Initializing personal chef for integration tests...")
    return PersonalChef.from_config(config)


@pytest.fixture(scope="module")
def fridge_image() -> str:
    url = os.getenv("TEST_FRIDGE_IMAGE_URL")
    if url:
        return url

    image_path = Path("images") / "fridge.jpg"
    if not image_path.exists():
        pytest.skip("No test image: set TEST_FRIDGE_IMAGE_URL or add images/fridge.jpg")
    return "data:image/jpeg;base64," + base64.b64encode(image_path.read_bytes()).decode("utf-8")


class TestAnalyseFridgeContents:
    """Real vision model call."""

    @pytest.mark.asyncio
    async def test_contents_match_schema(self, chef, fridge_image):
        contents = await chef.analyse_fridge_contents(fridge_image)

        logger.info(f"Detected: {contents.titles()}")
        for item in contents:
            assert item.title.strip()
            assert item.quantity >= 0


class TestPersonalChef:
    """Full pipeline runs."""

    @pytest.mark.asyncio
    async def test_dinner_italian(self, chef, fridge_image):
        result = await chef.run(fridge_image, MealPreferences(meal_type="dinner", cuisine="italian"))

        assert result.recipe.strip()
        if result.result_image is not None:
            assert result.result_image.startswith("data:image/")

    @pytest.mark.asyncio
    async def test_unsupported_reference_fails_fast(self, chef):
        with pytest.raises(FetchError):
            await chef.run("ftp://example.com/fridge.jpg", MealPreferences(meal_type="lunch", cuisine="thai"))
