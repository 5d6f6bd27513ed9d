"""
Document models for the imported dataset.
"""
from pydantic import BaseModel


class Character(BaseModel):
    """A row of the character list, as indexed in Elasticsearch."""
    name: str
    portrayal: str
    description: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Luke Skywalker",
                "portrayal": "Mark Hamill",
                "description": "A Jedi Knight and the son of Anakin Skywalker."
            }
        }
    }
