"""Metadata catalogue handed to the project generator.

The generator only accepts dependencies and BOMs that the metadata declares.
For each app the pipeline composes a fresh catalogue from the framework
defaults, the run's shared BOM, the target Java version, and one dependency
group holding that app's dependencies::

    metadata = (
        MetadataBuilder.with_defaults()
        .add_bom("scs-bom", "org.example", "scs-dependencies", "1.0.0")
        .add_java_version("17")
        .add_dependency_group("time-source", coordinates)
        .build()
    )

The result is an immutable value passed explicitly into each generate call.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from appgen.models import DependencyCoordinate


DEFAULT_BOOT_VERSION = "1.3.5.RELEASE"
DEFAULT_JAVA_VERSIONS: tuple[str, ...] = ("1.8", "11", "17")


class BomEntry(BaseModel):
    """A bill-of-materials coordinate that pins dependency versions."""
    model_config = ConfigDict(frozen=True)

    name: str
    group_id: str
    artifact_id: str
    version: str


class DependencyGroup(BaseModel):
    """A named group of selectable dependencies."""
    model_config = ConfigDict(frozen=True)

    name: str
    dependencies: tuple[DependencyCoordinate, ...] = ()


class GeneratorMetadata(BaseModel):
    """Immutable metadata catalogue consumed by a ``ProjectGenerator``."""
    model_config = ConfigDict(frozen=True)

    boot_version: str = DEFAULT_BOOT_VERSION
    project_type: str = "maven-project"
    packaging: str = "jar"
    language: str = "java"
    java_versions: tuple[str, ...] = DEFAULT_JAVA_VERSIONS
    default_java_version: str = DEFAULT_JAVA_VERSIONS[0]
    boms: tuple[BomEntry, ...] = ()
    dependency_groups: tuple[DependencyGroup, ...] = Field(default=())

    def get_bom(self, name: str) -> Optional[BomEntry]:
        """Return the BOM called *name*, or ``None``."""
        for bom in self.boms:
            if bom.name == name:
                return bom
        return None

    def find_dependency(self, dependency_id: str) -> Optional[DependencyCoordinate]:
        """Return the first dependency with id *dependency_id* across all groups."""
        for dep in self.all_dependencies():
            if dep.id == dependency_id:
                return dep
        return None

    def all_dependencies(self) -> list[DependencyCoordinate]:
        """Every declared dependency, in group order."""
        return [dep for group in self.dependency_groups for dep in group.dependencies]


class MetadataBuilder:
    """Fluent builder for ``GeneratorMetadata``."""

    def __init__(self) -> None:
        self._boms: list[BomEntry] = []
        self._java_versions: list[str] = []
        self._default_java: Optional[str] = None
        self._groups: list[DependencyGroup] = []

    @classmethod
    def with_defaults(cls) -> "MetadataBuilder":
        """Start from the framework defaults (Java versions, project type, packaging)."""
        builder = cls()
        builder._java_versions.extend(DEFAULT_JAVA_VERSIONS)
        return builder

    def add_bom(self, name: str, group_id: str, artifact_id: str, version: str) -> "MetadataBuilder":
        self._boms = [b for b in self._boms if b.name != name]
        self._boms.append(
            BomEntry(name=name, group_id=group_id, artifact_id=artifact_id, version=version)
        )
        return self

    def add_java_version(self, version: Optional[str]) -> "MetadataBuilder":
        """Declare *version* and make it the default. ``None`` or blank is ignored."""
        if version and version.strip():
            version = version.strip()
            if version not in self._java_versions:
                self._java_versions.append(version)
            self._default_java = version
        return self

    def add_dependency_group(
        self, name: str, dependencies: Iterable[DependencyCoordinate]
    ) -> "MetadataBuilder":
        self._groups.append(DependencyGroup(name=name, dependencies=tuple(dependencies)))
        return self

    def build(self) -> GeneratorMetadata:
        java_versions = tuple(self._java_versions) or DEFAULT_JAVA_VERSIONS
        return GeneratorMetadata(
            java_versions=java_versions,
            default_java_version=self._default_java or java_versions[0],
            boms=tuple(self._boms),
            dependency_groups=tuple(self._groups),
        )
