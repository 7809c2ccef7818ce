"""JsonModel base class for persisted and wire-facing models."""

from pydantic import BaseModel, ConfigDict


class JsonModel(BaseModel):
    """Base model for JSON persistence and Matrix content payloads.

    - Field aliases carry the on-disk / wire names (e.g. ``msgtype``)
    - Internal Python uses snake_case
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
    )

    def model_dump(self, **kwargs) -> dict:
        """Override model_dump - JSON-compatible output by default."""
        kwargs.setdefault("mode", "json")
        return super().model_dump(**kwargs)

    def model_dump_json(self, **kwargs) -> str:
        """Override to ensure wire names in JSON output."""
        kwargs.setdefault("by_alias", True)
        return super().model_dump_json(**kwargs)
