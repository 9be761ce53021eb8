from typing import Any, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T", bound="DocumentSchema")


class DocumentSchema(BaseModel):
    """Base for records kept in the document store.

    Attributes are snake_case in Python and camelCase on the wire and in
    stored documents (``interpreter_id`` <-> ``interpreterId``).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self, exclude: Optional[set[str]] = None) -> dict[str, Any]:
        """Serialize for storage; ``id`` lives in the key, not the body."""
        return self.model_dump(by_alias=True, mode="json", exclude={"id"} | (exclude or set()))

    @classmethod
    def from_document(cls: type[T], doc: Mapping[str, Any]) -> T:
        return cls.model_validate(dict(doc))
