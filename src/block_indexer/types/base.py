"""Shared pydantic bases for records and settings."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base model whose aliases follow JSON-RPC key style.

    A field declared as `parent_hash` is read from and dumped as `parentHash`.
    Python names are accepted too, so code and config files can use either.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
    )


class StrictBaseModel(CamelModel):
    """Immutable model that rejects unknown keys and implicit coercion."""

    model_config = CamelModel.model_config | ConfigDict(
        extra="forbid",
        frozen=True,
        strict=True,
    )
