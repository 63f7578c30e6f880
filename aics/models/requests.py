"""Request models for API endpoints."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class PluginInstallRequest(BaseModel):
    """Install from a bundle source, or from the catalog by id."""

    source: Optional[str] = Field(None, description="Bundle directory, .zip path or http(s) URL")
    catalog_id: Optional[str] = Field(None, description="Id of a catalog entry to install")
    upgrade: bool = Field(False, description="Replace an installed plugin with the same id")

    @field_validator("source", "catalog_id")
    @classmethod
    def strip_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("cannot be empty string")
        return v.strip() if v else None

    @model_validator(mode="after")
    def exactly_one_source(self):
        if bool(self.source) == bool(self.catalog_id):
            raise ValueError("Provide exactly one of 'source' or 'catalog_id'")
        return self


class PluginConfigUpdate(BaseModel):
    """Request body for updating plugin configuration."""

    config: Dict[str, Any]


class CommandRequest(BaseModel):
    """Arguments passed to a plugin command."""

    args: Dict[str, Any] = Field(default_factory=dict)
