"""
Base Pydantic model for API-facing records.

Fields are declared in snake_case and serialized with camelCase aliases
(e.g. agent_data -> agentData) to match the wire format consumed by the
dashboard and by remote agents. Either spelling is accepted on input.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Mutable API model with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


class FrozenApiModel(ApiModel):
    """Immutable API model; instances cannot be changed after creation."""

    model_config = ConfigDict(frozen=True)
