from typing import Annotated

from annotated_types import Ge
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DEPLOYGRAPH_")

    max_resolution_passes: Annotated[int, Ge(1)] = 10
    """Max number of static resolution passes before a template is rejected."""

    component_entry_point: str = "component.py"
    """File that must exist inside a local component directory."""

    entry_point_group: str = "deploygraph.components"
    """Package entry point group searched for non-local component references."""

    state_key_prefix: str = "deploygraph"
    """Prefix for keys written by remote state stores."""

    serialization_secret: str = "supersecretsecret"
    """Secret used for signing serialized state if using a supporting serializer."""
