"""Shared pytest fixtures for the appgen test suite.

Provides reusable fixtures for:
- A shared BOM and ready-made app descriptors
- Config factories pointing at temporary directories
- A fake project generator with failure injection
- Sample container ``pom.xml`` documents
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from appgen.config import BomConfig, Config
from appgen.generator import GeneratorError
from appgen.metadata import GeneratorMetadata
from appgen.models import AppDescriptor, DependencyRef, GenerationRequest


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

@pytest.fixture
def bom() -> BomConfig:
    return BomConfig(
        name="scs-bom",
        group_id="org.springframework.cloud.stream.app",
        artifact_id="spring-cloud-stream-app-dependencies",
        version="1.0.0.BUILD-SNAPSHOT",
    )


def make_app(key: str, **overrides: Any) -> AppDescriptor:
    """Build an ``AppDescriptor`` with sensible defaults for *key*."""
    package_suffix = key.replace("-", ".")
    values: dict[str, Any] = {
        "key": key,
        "group": "com.example",
        "description": f"{key} app",
        "package_target": f"com.example.{package_suffix}",
        "dependencies": (
            DependencyRef(
                artifact_id=f"spring-cloud-starter-stream-{key}",
                group_id="org.springframework.cloud.stream.app",
            ),
        ),
    }
    values.update(overrides)
    return AppDescriptor(**values)


@pytest.fixture
def app_factory() -> Callable[..., AppDescriptor]:
    return make_app


@pytest.fixture
def make_config(bom: BomConfig, tmp_path: Path) -> Callable[..., Config]:
    """Factory for a ``Config`` over the given apps, with a temp scratch dir."""

    def _make(*apps: AppDescriptor, **overrides: Any) -> Config:
        values: dict[str, Any] = {
            "apps": {app.key: app for app in apps},
            "bom": bom,
            "tmp_dir": tmp_path / "scratch",
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def container_dir(tmp_path: Path) -> Path:
    """Path of a container directory that does not exist yet."""
    return tmp_path / "stream-apps"


# ---------------------------------------------------------------------------
# Fake generator
# ---------------------------------------------------------------------------

class FakeGenerator:
    """In-memory stand-in for a project generator.

    Writes a tiny module (``pom.xml``, a main class and the placeholder
    ``*ApplicationTests.java``) for every request. Keys listed in
    ``fail_keys`` raise ``GeneratorError``; keys listed in ``empty_keys``
    produce a root without the module directory, so the following
    relocation fails.
    """

    def __init__(self, tmp_dir: Path) -> None:
        self.tmp_dir = tmp_dir
        self.fail_keys: set[str] = set()
        self.empty_keys: set[str] = set()
        self.calls: list[tuple[GenerationRequest, GeneratorMetadata]] = []
        self._counter = 0

    def generate(self, request: GenerationRequest, metadata: GeneratorMetadata) -> Path:
        self.calls.append((request, metadata))
        if request.artifact_id in self.fail_keys:
            raise GeneratorError(request.artifact_id, "simulated failure")

        self._counter += 1
        root = self.tmp_dir / f"gen-{self._counter}"
        root.mkdir(parents=True)
        if request.artifact_id in self.empty_keys:
            return root

        module = root / request.base_dir
        package_path = Path(*request.package_name.split("."))
        (module / "src" / "main" / "java" / package_path).mkdir(parents=True)
        (module / "src" / "test" / "java" / package_path).mkdir(parents=True)
        (module / "pom.xml").write_text(f"<project>{request.artifact_id}</project>\n", encoding="utf-8")
        (module / "src" / "main" / "java" / package_path / "DemoApplication.java").write_text(
            "class DemoApplication {}\n", encoding="utf-8"
        )
        (module / "src" / "test" / "java" / package_path / "DemoApplicationTests.java").write_text(
            "class DemoApplicationTests {}\n", encoding="utf-8"
        )
        return root


@pytest.fixture
def fake_generator(tmp_path: Path) -> FakeGenerator:
    return FakeGenerator(tmp_path / "generated")


# ---------------------------------------------------------------------------
# Container documents
# ---------------------------------------------------------------------------

@pytest.fixture
def container_pom_text() -> str:
    """A hand-edited container POM with comments and custom elements."""
    return textwrap.dedent("""\
        <?xml version="1.0" encoding="UTF-8"?>
        <project xmlns="http://maven.apache.org/POM/4.0.0">
            <modelVersion>4.0.0</modelVersion>
            <!-- maintained by hand: do not reorder -->
            <groupId>org.example.apps</groupId>
            <artifactId>my-apps</artifactId>
            <version>2.0.0</version>
            <packaging>pom</packaging>

            <modules>
                <module>existing-sink</module>
                <!-- <module>retired-processor</module> -->
            </modules>

            <properties>
                <custom.flag>true</custom.flag>
            </properties>

            <profiles>
                <profile>
                    <id>extra</id>
                    <modules>
                        <module>profile-only</module>
                    </modules>
                </profile>
            </profiles>
        </project>
        """)


@pytest.fixture
def write_container_pom(container_dir: Path, container_pom_text: str) -> Callable[..., Path]:
    """Write *text* (default: ``container_pom_text``) as the container's ``pom.xml``."""

    def _write(text: str | None = None) -> Path:
        container_dir.mkdir(parents=True, exist_ok=True)
        path = container_dir / "pom.xml"
        path.write_bytes((text if text is not None else container_pom_text).encode("utf-8"))
        return path

    return _write
