"""Pydantic v2 models for appgen.

Defines the catalogue entries (generatable apps and their dependency
references), the request handed to a project generator, and the per-app
outcomes accumulated by the batch pipeline.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from appgen.utils import is_safe_module_name


# ---------------------------------------------------------------------------
# Catalogue models
# ---------------------------------------------------------------------------

class DependencyCoordinate(BaseModel):
    """A dependency as the project generator sees it, pinned against a BOM."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Dependency id, identical to the artifact id")
    group_id: str = Field(..., description="Maven group id")
    artifact_id: str = Field(..., description="Maven artifact id")
    version: Optional[str] = Field(default=None, description="Explicit version, if not BOM-managed")
    bom: Optional[str] = Field(default=None, description="Name of the BOM managing the version")


class DependencyRef(BaseModel):
    """A dependency of a generatable app, as written in the catalogue."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    artifact_id: str = Field(..., alias="artifactId", min_length=1)
    group_id: str = Field(..., alias="groupId", min_length=1)
    version: Optional[str] = Field(default=None)
    bom_name: Optional[str] = Field(default=None, alias="bomName")

    def to_coordinate(self, bom_name: Optional[str] = None) -> DependencyCoordinate:
        """Convert to a generator-facing coordinate.

        Args:
            bom_name: The run's shared BOM name. It wins over any per-dependency
                ``bom_name`` so every app is pinned against the same BOM.
        """
        return DependencyCoordinate(
            id=self.artifact_id,
            group_id=self.group_id,
            artifact_id=self.artifact_id,
            version=self.version,
            bom=bom_name or self.bom_name,
        )


class AppDescriptor(BaseModel):
    """One generatable app from the catalogue."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str = Field(..., description="Module name, artifact id and directory name")
    group: str = Field(..., alias="groupId", min_length=1, description="Organisation group id")
    description: str = Field(default="")
    package_target: str = Field(..., alias="packageName", min_length=1)
    dependencies: tuple[DependencyRef, ...] = Field(default=())
    destination_override: Optional[Path] = Field(
        default=None,
        alias="generatedProjectHome",
        description="Container directory for this app when no global one is set",
    )

    @field_validator("key")
    @classmethod
    def _key_is_filesystem_safe(cls, value: str) -> str:
        if not is_safe_module_name(value):
            raise ValueError(
                f"app key {value!r} is not a safe module name "
                "(letters, digits, '.', '_' and '-' only)"
            )
        return value

    @field_validator("destination_override", mode="before")
    @classmethod
    def _blank_override_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def artifact_names(self) -> list[str]:
        """Artifact ids of every dependency, in catalogue order."""
        return [dep.artifact_id for dep in self.dependencies]


# ---------------------------------------------------------------------------
# Generator request
# ---------------------------------------------------------------------------

class GenerationRequest(BaseModel):
    """Everything a project generator needs to produce one app skeleton."""
    model_config = ConfigDict(frozen=True)

    artifact_id: str
    group_id: str
    name: str
    description: str = ""
    package_name: str
    base_dir: str
    dependencies: tuple[DependencyCoordinate, ...] = ()
    style: tuple[str, ...] = Field(
        default=(), description="Requested dependency ids, in catalogue order"
    )
    java_version: Optional[str] = None

    @classmethod
    def for_app(
        cls,
        app: AppDescriptor,
        bom_name: Optional[str],
        java_version: Optional[str] = None,
    ) -> "GenerationRequest":
        """Build the request for *app*, stamping every dependency with *bom_name*."""
        return cls(
            artifact_id=app.key,
            group_id=app.group,
            name=app.key,
            description=app.description,
            package_name=app.package_target,
            base_dir=app.key,
            dependencies=tuple(dep.to_coordinate(bom_name) for dep in app.dependencies),
            style=tuple(app.artifact_names),
            java_version=java_version,
        )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class OutcomeStatus(str, Enum):
    """Terminal state of one app in a batch run."""
    MERGED = "merged"
    MERGE_FAILED = "merge_failed"
    NO_DESTINATION = "no_destination"


class AppOutcome(BaseModel):
    """What happened to one app."""
    model_config = ConfigDict(frozen=True)

    key: str
    status: OutcomeStatus
    path: Optional[Path] = Field(
        default=None, description="Merged module path, or generated path if not merged"
    )
    reason: str = Field(default="", description="Failure reason for merge_failed")

    @classmethod
    def merged(cls, key: str, path: Path) -> "AppOutcome":
        return cls(key=key, status=OutcomeStatus.MERGED, path=path)

    @classmethod
    def no_destination(cls, key: str, generated_path: Path) -> "AppOutcome":
        return cls(key=key, status=OutcomeStatus.NO_DESTINATION, path=generated_path)

    @classmethod
    def merge_failed(cls, key: str, reason: str) -> "AppOutcome":
        return cls(key=key, status=OutcomeStatus.MERGE_FAILED, reason=reason)


class BatchReport(BaseModel):
    """Ordered outcomes of a batch run."""

    outcomes: list[AppOutcome] = Field(default_factory=list)
    aborted: Optional[str] = Field(
        default=None, description="Why the batch stopped early, if it did"
    )

    @property
    def success(self) -> bool:
        """``False`` if any app failed to merge."""
        return not self.failures

    @property
    def failures(self) -> list[AppOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.MERGE_FAILED]

    def by_key(self, key: str) -> AppOutcome:
        """Return the outcome recorded for *key*.

        Raises:
            KeyError: If no outcome was recorded for *key*.
        """
        for outcome in self.outcomes:
            if outcome.key == key:
                return outcome
        raise KeyError(key)

    def counts(self) -> dict[str, int]:
        """Return ``{status: count}`` for every status, including zeros."""
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts
