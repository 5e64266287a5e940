"""Base schema classes with camelCase alias generation.

All API schemas and the persisted record inherit from these instead of
BaseModel directly. Python code stays snake_case; JSON on disk and over the
wire is camelCase.
"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and outputs camelCase."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "protected_namespaces": (),
    }
