from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input and serializes camelCase for the web client."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
