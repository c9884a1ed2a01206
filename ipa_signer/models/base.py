"""JsonModel base class for API communication and on-disk records."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class JsonModel(BaseModel):
    """Base model with camelCase/snake_case conversion.

    - JSON output (HTTP responses, metadata record files) uses camelCase
    - Internal Python uses snake_case
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def model_dump(self, **kwargs) -> dict:
        """Override model_dump - snake_case, JSON-safe values for internal use."""
        kwargs.setdefault("mode", "json")
        return super().model_dump(**kwargs)

    def model_dump_json(self, **kwargs) -> str:
        """Override to ensure camelCase in JSON output."""
        kwargs.setdefault("by_alias", True)
        return super().model_dump_json(**kwargs)

    def to_json(self, pretty: bool = False) -> str:
        """Serialize to a camelCase JSON string."""
        return self.model_dump_json(indent=2 if pretty else None, exclude_none=True)

    def to_dict(
        self,
        mode: Literal["json", "python"] = "python",
    ) -> dict[str, Any]:
        """Convert to dictionary; camelCase keys in json mode."""
        return self.model_dump(
            exclude_none=True,
            by_alias=mode == "json",
            mode=mode,
        )
