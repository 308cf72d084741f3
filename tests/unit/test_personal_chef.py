"""Unit tests for the personal chef orchestrator.

Stage-level tests use mocked stages; the end-to-end scenarios wire real stages
from Config with mocked Gemini / Cloud Storage / HTTP clients.
"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from fridge_chef.flows.errors import ExtractionError, FetchError, GenerationError
from fridge_chef.flows.image_fetcher import FetchedImage
from fridge_chef.flows.personal_chef import PersonalChef
from fridge_chef.models.models import (
    FridgeContents,
    FridgeItem,
    MealPreferences,
    PersonalChefRequest,
    RecipeResult,
)

DINNER_ITALIAN = MealPreferences(meal_type="dinner", cuisine="italian")
CONTENTS = FridgeContents([FridgeItem(title="Tomatoes", quantity=4), FridgeItem(title="Mozzarella", quantity=1)])


@pytest.fixture
def stages(png_bytes):
    fetcher = Mock()
    fetcher.fetch = AsyncMock(return_value=FetchedImage(png_bytes, "image/png"))
    analyser = Mock()
    analyser.extract = AsyncMock(return_value=CONTENTS)
    recipe_generator = Mock()
    recipe_generator.generate_recipe = AsyncMock(return_value="Caprese salad")
    illustrator = Mock()
    illustrator.illustrate = AsyncMock(return_value="data:image/png;base64,AAAA")
    return fetcher, analyser, recipe_generator, illustrator


@pytest.fixture
def chef(stages):
    fetcher, analyser, recipe_generator, illustrator = stages
    return PersonalChef(fetcher, analyser, recipe_generator, illustrator)


class TestPersonalChefRun:
    """Test sequencing and error propagation with mocked stages."""

    @pytest.mark.asyncio
    async def test_stages_threaded_in_order(self, chef, stages, png_bytes):
        fetcher, analyser, recipe_generator, illustrator = stages

        result = await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        assert result == RecipeResult(recipe="Caprese salad", result_image="data:image/png;base64,AAAA")
        fetcher.fetch.assert_awaited_once_with("https://example.com/fridge.jpg")
        analyser.extract.assert_awaited_once_with(FetchedImage(png_bytes, "image/png").to_data_uri())
        recipe_generator.generate_recipe.assert_awaited_once_with(list(CONTENTS), DINNER_ITALIAN)
        illustrator.illustrate.assert_awaited_once_with("Caprese salad")

    @pytest.mark.asyncio
    async def test_fetch_error_stops_pipeline(self, chef, stages):
        fetcher, analyser, recipe_generator, illustrator = stages
        fetcher.fetch.side_effect = FetchError("Unsupported image reference")

        with pytest.raises(FetchError):
            await chef.run("ftp://example.com/fridge.jpg", DINNER_ITALIAN)

        analyser.extract.assert_not_called()
        recipe_generator.generate_recipe.assert_not_called()
        illustrator.illustrate.assert_not_called()

    @pytest.mark.asyncio
    async def test_extraction_error_stops_before_recipe(self, chef, stages):
        _, _, recipe_generator, illustrator = stages
        stages[1].extract.side_effect = ExtractionError("Model output does not match")

        with pytest.raises(ExtractionError):
            await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        recipe_generator.generate_recipe.assert_not_called()
        illustrator.illustrate.assert_not_called()

    @pytest.mark.asyncio
    async def test_generation_error_no_partial_result(self, chef, stages):
        stages[2].generate_recipe.side_effect = GenerationError("Recipe model returned no text")

        with pytest.raises(GenerationError):
            await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        stages[3].illustrate.assert_not_called()

    @pytest.mark.asyncio
    async def test_illustration_outcome_never_changes_recipe(self, chef, stages):
        """Same inputs give the same recipe whether or not illustration succeeds."""
        illustrated = await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)
        stages[3].illustrate.return_value = None
        plain = await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        assert illustrated.recipe == plain.recipe == "Caprese salad"
        assert illustrated.result_image is not None
        assert plain.result_image is None

    @pytest.mark.asyncio
    async def test_without_illustrator(self, stages):
        fetcher, analyser, recipe_generator, _ = stages
        chef = PersonalChef(fetcher, analyser, recipe_generator)

        result = await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        assert result.result_image is None

    @pytest.mark.asyncio
    async def test_run_request(self, chef, stages):
        request = PersonalChefRequest(image_url="gs://bucket/fridge.jpg", meal_type="dinner", cuisine="italian")

        await chef.run_request(request)

        stages[0].fetch.assert_awaited_once_with("gs://bucket/fridge.jpg")
        stages[2].generate_recipe.assert_awaited_once_with(list(CONTENTS), DINNER_ITALIAN)

    @pytest.mark.asyncio
    async def test_stage_transitions_logged_with_one_run_id(self, chef, caplog):
        with caplog.at_level(logging.INFO, logger="fridge_chef"):
            await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        records = [record for record in caplog.records if record.name == "fridge_chef"]
        run_ids = {record.request_id for record in records}
        stages = [record.stage for record in records]
        assert len(run_ids) == 1
        assert stages[0] == "pipeline"
        assert {"fetch", "extraction", "recipe", "illustration"} <= set(stages)

    @pytest.mark.asyncio
    async def test_model_calls_are_bounded(self, stages):
        """No more than max_concurrent_model_calls stage calls run at once across runs."""
        fetcher, analyser, recipe_generator, illustrator = stages
        in_flight = 0
        peak = 0

        async def slow_extract(uri):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return CONTENTS

        analyser.extract.side_effect = slow_extract
        chef = PersonalChef(fetcher, analyser, recipe_generator, illustrator, max_concurrent_model_calls=2)

        results = await asyncio.gather(*(chef.run(f"https://example.com/{i}.jpg", DINNER_ITALIAN) for i in range(6)))

        assert len(results) == 6
        assert peak == 2


class TestSubFlows:
    """Test the individually exposed flows."""

    @pytest.mark.asyncio
    async def test_analyse_fridge_contents(self, chef, stages):
        contents = await chef.analyse_fridge_contents("https://example.com/fridge.jpg")

        assert contents == CONTENTS
        stages[2].generate_recipe.assert_not_called()

    @pytest.mark.asyncio
    async def test_generate_recipe_without_preferences(self, chef, stages):
        assert await chef.generate_recipe(CONTENTS) == "Caprese salad"
        stages[2].generate_recipe.assert_awaited_once_with(list(CONTENTS), None)

    @pytest.mark.asyncio
    async def test_generate_final_result_image(self, chef):
        assert await chef.generate_final_result_image("Caprese salad") == "data:image/png;base64,AAAA"


class TestEndToEndScenarios:
    """Real stages, mocked provider clients."""

    @staticmethod
    def _session(data, content_type):
        response = MagicMock()
        response.headers = {"Content-Type": content_type}
        response.read = AsyncMock(return_value=data)
        response.raise_for_status = Mock()
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=False)
        session = MagicMock()
        session.get = Mock(return_value=response)
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)
        return session

    @pytest.mark.asyncio
    async def test_scenario_a_https_dinner_italian(self, config, genai_client, jpeg_bytes, text_response):
        """Fetch once, extract once, recipe once, returns a non-empty recipe."""
        config.ENABLE_ILLUSTRATION = False
        genai_client.aio.models.generate_content.side_effect = [
            text_response(json.dumps([{"title": "Basil", "quantity": 1}, {"title": "Tomatoes", "quantity": 5}])),
            text_response("Pasta al pomodoro\n\n1. Boil the pasta."),
        ]
        session = self._session(jpeg_bytes, "image/jpeg")
        chef = PersonalChef.from_config(config, genai_client=genai_client, storage_client=MagicMock())

        with patch("fridge_chef.flows.image_fetcher.aiohttp.ClientSession", return_value=session) as session_class:
            result = await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        assert result.recipe == "Pasta al pomodoro\n\n1. Boil the pasta."
        assert result.result_image is None
        assert session_class.call_count == 1
        assert genai_client.aio.models.generate_content.call_count == 2
        recipe_prompt = genai_client.aio.models.generate_content.call_args_list[1].kwargs["contents"]
        assert recipe_prompt.startswith("Generate a dinner recipe in the italian style")
        assert "- Tomatoes (x5)" in recipe_prompt
        genai_client.aio.models.generate_images.assert_not_called()

    @pytest.mark.asyncio
    async def test_scenario_a_with_illustration(self, config, genai_client, jpeg_bytes, png_bytes, text_response, image_response):
        genai_client.aio.models.generate_content.side_effect = [
            text_response('[{"title": "Basil", "quantity": 1}]'),
            text_response("Pesto"),
        ]
        genai_client.aio.models.generate_images.return_value = image_response(png_bytes)
        chef = PersonalChef.from_config(config, genai_client=genai_client, storage_client=MagicMock())

        with patch("fridge_chef.flows.image_fetcher.aiohttp.ClientSession", return_value=self._session(jpeg_bytes, "image/jpeg")):
            result = await chef.run("https://example.com/fridge.jpg", DINNER_ITALIAN)

        assert result.recipe == "Pesto"
        assert result.result_image.startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_scenario_b_missing_storage_object(self, config, genai_client):
        """Missing gs:// object fails with FetchError, no model is called."""
        storage_client = MagicMock()
        storage_client.bucket.return_value.get_blob.return_value = None
        chef = PersonalChef.from_config(config, genai_client=genai_client, storage_client=storage_client)

        with pytest.raises(FetchError):
            await chef.run("gs://my-bucket/missing.jpg", DINNER_ITALIAN)

        genai_client.aio.models.generate_content.assert_not_called()
        genai_client.aio.models.generate_images.assert_not_called()

    @pytest.mark.asyncio
    async def test_scenario_c_item_missing_quantity(self, config, genai_client, png_data_uri, text_response):
        """Invalid extraction output fails before the recipe stage runs."""
        genai_client.aio.models.generate_content.return_value = text_response('[{"title": "Milk"}]')
        chef = PersonalChef.from_config(config, genai_client=genai_client, storage_client=MagicMock())

        with pytest.raises(ExtractionError):
            await chef.run(png_data_uri, DINNER_ITALIAN)

        assert genai_client.aio.models.generate_content.call_count == 1
        genai_client.aio.models.generate_images.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_fridge_still_gets_recipe(self, config, genai_client, png_data_uri, text_response):
        config.ENABLE_ILLUSTRATION = False
        genai_client.aio.models.generate_content.side_effect = [text_response("[]"), text_response("Plain rice")]
        chef = PersonalChef.from_config(config, genai_client=genai_client, storage_client=MagicMock())

        result = await chef.run(png_data_uri, DINNER_ITALIAN)

        assert result.recipe == "Plain rice"

    @pytest.mark.asyncio
    @patch("fridge_chef.flows.personal_chef.build_genai_client")
    async def test_from_config_builds_client(self, mock_build, config):
        chef = PersonalChef.from_config(config)

        mock_build.assert_called_once_with(config)
        assert chef.analyser.client is mock_build.return_value
        assert chef.recipe_generator.client is mock_build.return_value
        assert chef.illustrator.client is mock_build.return_value
