"""
GeoPoll Data Models
===================

Pydantic data models for publishers and the events ingested from their feeds.
These models correspond to the database schema and provide validation,
serialization, and type hints.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
import hashlib
import json
import uuid

from pydantic import BaseModel, Field, field_validator


class Publisher(BaseModel):
    """Third-party feed source with an endpoint and a contact."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    title: Optional[str] = Field(default=None, max_length=255, description="Display name")
    endpoint: str = Field(..., min_length=1, description="Feed endpoint URL")
    email: Optional[str] = Field(default=None, description="Contact address for failure notifications")
    description: Optional[str] = Field(default=None, description="Human readable description")
    active: bool = Field(default=True, description="Whether the publisher is polled")
    created_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = Field(default=None, description="Last successful ingestion")

    model_config = {"frozen": True}

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v):
        """Endpoints must be absolute http(s) URLs."""
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("Publisher endpoint must be an http(s) URL")
        return v

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if "@" not in v:
            raise ValueError("Publisher email must contain '@'")
        if "\r" in v or "\n" in v:
            raise ValueError("Publisher email must be a single line")
        return v

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Publisher":
        """Create Publisher from database row."""
        data = dict(row)
        data['active'] = bool(data.get('active', True))
        return cls(**data)

    def __str__(self) -> str:
        return f"Publisher({self.id}:{self.endpoint})"


class Event(BaseModel):
    """One geolocated event ingested from a publisher feature."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique event ID")
    publisher_id: int = Field(..., description="Owning publisher")
    feature_id: str = Field(..., min_length=1, description="Publisher-scoped feature identifier")
    title: Optional[str] = Field(default=None, description="Feature title")
    description: Optional[str] = Field(default=None, description="Feature description")
    geometry: Optional[Dict[str, Any]] = Field(default=None, description="GeoJSON geometry")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Raw feature properties")
    created_at: Optional[datetime] = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_feature(cls, feature: Dict[str, Any], publisher_id: int) -> "Event":
        """Build an event from a GeoJSON feature without altering its content."""
        properties = feature.get('properties') or {}
        feature_id = feature.get('id')
        if feature_id is None or str(feature_id) == "":
            feature_id = feature_fingerprint(feature)

        return cls(
            publisher_id=publisher_id,
            feature_id=str(feature_id),
            title=properties.get('title'),
            description=properties.get('description'),
            geometry=feature.get('geometry'),
            properties=properties,
        )

    def geometry_json(self) -> Optional[str]:
        return json.dumps(self.geometry) if self.geometry is not None else None

    def properties_json(self) -> str:
        return json.dumps(self.properties)

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Event":
        """Create Event from database row with JSON parsing."""
        data = dict(row)
        if isinstance(data.get('geometry'), str):
            data['geometry'] = json.loads(data['geometry'])
        if isinstance(data.get('properties'), str):
            data['properties'] = json.loads(data['properties'])
        return cls(**data)

    def __str__(self) -> str:
        return f"Event({self.publisher_id}:{self.feature_id})"


def feature_fingerprint(feature: Dict[str, Any]) -> str:
    """Stable identifier for features published without an id."""
    canonical = json.dumps(feature, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()
