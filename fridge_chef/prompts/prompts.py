"""Prompt templates for the Fridge Chef stages.

Templates are Jinja2 sources compiled into PromptTemplate objects. Each stage
receives its template through its constructor; rendering is a pure function
of the template and the data passed in.

Built-in templates can be overridden by dropping files into PROMPTS_DIR:
- analyse_fridge.jinja2      (no variables)
- generate_recipe.jinja2     (contents, meal_type, cuisine)
- final_result_image.jinja2  (recipe)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, StrictUndefined

from fridge_chef.utils.logger import logger


ANALYSE_FRIDGE_TEMPLATE = """\
Tell me which items of food can be seen in this image.
Be as specific as you can, for example, tell me exactly
which kinds of vegetable you can see, what kinds of
beverages and other liquids, etc. Also, tell me how
many of each are there at least.
Answer with a JSON array of objects with a "title" and a "quantity".
If no food can be seen, answer with an empty array.
"""

GENERATE_RECIPE_TEMPLATE = """\
Generate a {% if meal_type %}{{ meal_type }} {% endif %}recipe\
{% if cuisine %} in the {{ cuisine }} style{% endif %} that I can cook with these ingredients:
{% for item in contents %}
- {{ item.title }}{% if item.quantity %} (x{{ item.quantity }}){% endif %}

{% else %}
- (nothing could be identified in the fridge, use only common pantry staples)
{% endfor %}
"""

FINAL_RESULT_IMAGE_TEMPLATE = """\
Photo of the final result of the following recipe: {{ recipe }}."""


def _environment() -> Environment:
    # Prompts are plain text, never HTML
    return Environment(
        autoescape=False,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
    )


class PromptTemplate:
    """A compiled prompt template."""

    def __init__(self, name: str, source: str) -> None:
        self.name = name
        self.source = source
        self._template = _environment().from_string(source)

    @classmethod
    def from_file(cls, path: str | Path) -> "PromptTemplate":
        path = Path(path)
        return cls(path.stem, path.read_text(encoding="utf-8"))

    def render(self, **data: Any) -> str:
        return self._template.render(**data).strip()

    def __repr__(self) -> str:
        return f"PromptTemplate(name={self.name!r})"


def render_prompt(template: PromptTemplate, data: dict[str, Any]) -> str:
    """Render `template` with `data`. Missing variables raise jinja2.UndefinedError."""
    return template.render(**data)


@dataclass(frozen=True)
class PromptTemplates:
    """The three stage templates, passed explicitly into the stages."""

    analyse_fridge: PromptTemplate
    generate_recipe: PromptTemplate
    final_result_image: PromptTemplate


def load_prompt_templates(prompts_dir: Optional[str] = None) -> PromptTemplates:
    """Compile the built-in templates, replacing any that have a file in `prompts_dir`.

    Args:
        prompts_dir: Directory containing <name>.jinja2 overrides, or None.

    Returns:
        PromptTemplates ready to hand to the stages.
    """
    builtins = {
        "analyse_fridge": ANALYSE_FRIDGE_TEMPLATE,
        "generate_recipe": GENERATE_RECIPE_TEMPLATE,
        "final_result_image": FINAL_RESULT_IMAGE_TEMPLATE,
    }
    compiled = {}
    for name, source in builtins.items():
        override = Path(prompts_dir) / f"{name}.jinja2" if prompts_dir else None
        if override is not None and override.is_file():
            logger.info(f"Loading prompt override: {override}")
            compiled[name] = PromptTemplate.from_file(override)
        else:
            compiled[name] = PromptTemplate(name, source)
    return PromptTemplates(**compiled)
