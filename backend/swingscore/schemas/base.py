from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model whose stored/wire form uses camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict:
        """Serialize to the JSON-compatible dict stored in the document store."""
        return self.model_dump(mode="json", by_alias=True)
