#!/usr/bin/env python3
"""Ad hoc runner for the Fridge Chef pipeline.

Run the personal chef flow directly without starting the flow server.

Usage:
    python query.py https://example.com/fridge.jpg
    python query.py --meal-type dinner --cuisine italian gs://my-bucket/fridge.jpg
    python query.py --contents-only images/fridge.png   # Only list the fridge contents
    python query.py --no-image images/fridge.png         # Skip the final result image
    python query.py --debug images/fridge.png            # Show full JSON result

Local file paths are read and inlined as data URIs; anything else is passed
to the image fetcher as-is (http://, https://, gs:// or data:).
"""

import asyncio
import base64
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from fridge_chef.flows.personal_chef import PersonalChef
from fridge_chef.models.models import MealPreferences
from fridge_chef.utils.config import Config
from fridge_chef.utils.logger import logger

console = Console()

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}

USAGE = (
    'Usage: python query.py [--meal-type TYPE] [--cuisine CUISINE] [--contents-only] [--no-image] [--debug] "<image>"'
)


def resolve_reference(image: str) -> str:
    """Turn a local file path into a data URI, pass URLs through untouched."""
    if "://" in image or image.startswith("data:"):
        return image

    image_file = Path(image)
    if not image_file.exists():
        console.print(f"[red]✗ Error: Image file not found: {image}[/red]")
        sys.exit(1)

    logger.info(f"Loading image: {image_file.name}...")
    image_data = base64.b64encode(image_file.read_bytes()).decode("utf-8")
    mime_type = MIME_TYPES.get(image_file.suffix.lower(), "image/jpeg")
    return f"data:{mime_type};base64,{image_data}"


def print_contents(contents) -> None:
    table = Table(title="Fridge contents")
    table.add_column("Item")
    table.add_column("Quantity", justify="right")
    for item in contents:
        table.add_row(item.title, str(item.quantity))
    console.print(table)


async def run_query(
    image: str,
    prefs: Optional[MealPreferences] = None,
    contents_only: bool = False,
    with_image: bool = True,
    debug: bool = False,
) -> None:
    """Execute a single pipeline run and print the result.

    Args:
        image: Image reference or local file path.
        prefs: Meal type and cuisine, or None for an unconstrained recipe.
        contents_only: Stop after listing the fridge contents.
        with_image: Generate the final result image.
        debug: Display the full JSON result.
    """
    config = Config()
    if not with_image:
        config.ENABLE_ILLUSTRATION = False
    config.validate()

    chef = PersonalChef.from_config(config)
    reference = resolve_reference(image)

    logger.info(f"Running personal chef for: {image}")
    logger.info("---")

    if contents_only:
        contents = await chef.analyse_fridge_contents(reference)
        console.print()
        if debug:
            console.print_json(data=contents.model_dump())
        print_contents(contents)
        return

    result = await chef.run(reference, prefs)

    logger.info("---")
    console.print()

    if debug:
        console.print("[bold cyan]Debug Mode: Full Result[/bold cyan]")
        console.print("[dim]" + "=" * 60 + "[/dim]")
        data = result.model_dump(by_alias=True)
        if data.get("resultImage"):
            data["resultImage"] = data["resultImage"][:80] + "..."
        console.print_json(data=data)
        console.print("[dim]" + "=" * 60 + "[/dim]")
        console.print()

    console.print(Markdown(result.recipe))
    if result.result_image:
        console.print(f"\n[green]✓ Final result image generated ({len(result.result_image) / 1024:.1f} KB data URI)[/green]")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(USAGE)
        print("")
        print("Examples:")
        print("  python query.py https://example.com/fridge.jpg")
        print("  python query.py --meal-type dinner --cuisine italian gs://my-bucket/fridge.jpg")
        print("  python query.py --contents-only images/fridge.png")
        sys.exit(1)

    meal_type = None
    cuisine = None
    contents_only = False
    with_image = True
    debug_mode = False
    argv_start = 1

    while argv_start < len(sys.argv) and sys.argv[argv_start].startswith("--"):
        flag = sys.argv[argv_start]
        if flag in ("--meal-type", "--cuisine"):
            argv_start += 1
            if argv_start >= len(sys.argv):
                print(f"Error: {flag} flag requires a value")
                sys.exit(1)
            if flag == "--meal-type":
                meal_type = sys.argv[argv_start]
            else:
                cuisine = sys.argv[argv_start]
        elif flag == "--contents-only":
            contents_only = True
        elif flag == "--no-image":
            with_image = False
        elif flag == "--debug":
            debug_mode = True
        else:
            print(f"Unknown flag: {flag}")
            sys.exit(1)
        argv_start += 1

    if argv_start >= len(sys.argv):
        print("Error: No image provided")
        print(USAGE)
        sys.exit(1)

    if (meal_type is None) != (cuisine is None):
        print("Error: --meal-type and --cuisine must be given together")
        sys.exit(1)
    preferences = MealPreferences(meal_type=meal_type, cuisine=cuisine) if meal_type else None

    try:
        asyncio.run(
            run_query(
                sys.argv[argv_start],
                prefs=preferences,
                contents_only=contents_only,
                with_image=with_image,
                debug=debug_mode,
            )
        )
    except KeyboardInterrupt:
        logger.info("\nQuery interrupted by user.")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Query execution failed: {e}", exc_info=True)
        sys.exit(1)
