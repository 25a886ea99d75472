"""
Template loading and normalization.
"""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .component import ComponentDescriptor
from .exceptions import TemplateError
from .references import is_component_declaration, resolve_template

if TYPE_CHECKING:  # pragma: no cover
    TemplateSource = Mapping[str, Any] | str | os.PathLike[str]

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = {".json": json.loads, ".yml": yaml.safe_load, ".yaml": yaml.safe_load}


class ComponentDeclaration(BaseModel):
    component: str
    inputs: Any = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("component")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("component reference must not be empty")

        return value


class Template:
    def __init__(self, data: Mapping[str, Any], base_dir: Path | None = None) -> None:
        self.data = dict(data)
        # local component references resolve against the loader's root when unset
        self.base_dir = base_dir

    @property
    def aliases(self) -> list[str]:
        return [key for key, value in self.data.items() if is_component_declaration(value)]

    def resolve(self, max_passes: int = 10) -> "Template":
        """Resolve static variables, returning a new Template."""
        return Template(resolve_template(self.data, max_passes), self.base_dir)

    def components(self) -> dict[str, ComponentDescriptor]:
        components: dict[str, ComponentDescriptor] = {}

        for alias in self.aliases:
            try:
                declaration = ComponentDeclaration.model_validate(self.data[alias])
            except ValidationError as e:
                raise TemplateError(f"Component '{alias}' is malformed: {e}") from e

            components[alias] = ComponentDescriptor(
                alias=alias, ref=declaration.component, inputs=declaration.inputs
            )

        return components


def load_template(
    source: "TemplateSource | Template", base_dir: Path | None = None
) -> Template:
    """
    Normalize a template given either as a mapping or as the path to a JSON or YAML
    file.
    """
    if isinstance(source, Template):
        return source
    elif isinstance(source, Mapping):
        return Template(source, base_dir)
    elif not isinstance(source, str | os.PathLike):
        raise TemplateError(
            "The template could either be a mapping, or a string path to a template"
            " file."
        )

    path = Path(source).expanduser()
    parser = TEMPLATE_SUFFIXES.get(path.suffix.lower())

    if parser is None or not path.is_file():
        raise TemplateError(f"The referenced template path '{source}' does not exist.")

    logger.debug("Loading template from '%s'.", path)

    try:
        data = parser(path.read_text())
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise TemplateError(f"The template '{source}' could not be parsed: {e}") from e

    if not isinstance(data, Mapping):
        raise TemplateError(f"The template '{source}' must contain a mapping.")

    return Template(data, base_dir or path.parent.resolve())
