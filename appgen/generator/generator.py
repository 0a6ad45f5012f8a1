"""Project generators.

A project generator turns a ``GenerationRequest`` plus a ``GeneratorMetadata``
catalogue into a directory tree. The returned path is a scratch root that
contains exactly one subdirectory, named after the request's ``base_dir``,
holding the generated app. Ownership of that root passes to the caller.

``TemplateProjectGenerator`` is the built-in implementation: it renders a
Maven/Spring Boot application skeleton from the Jinja2 templates shipped in
``appgen/generator/templates/app``.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Protocol

from appgen.generator.templates import TemplateRenderer
from appgen.metadata import BomEntry, GeneratorMetadata
from appgen.models import GenerationRequest
from appgen.utils import is_safe_module_name, to_pascal

logger = logging.getLogger(__name__)


class GeneratorError(Exception):
    """Raised when a project generator fails to produce output."""

    def __init__(self, artifact_id: str, message: str) -> None:
        self.artifact_id = artifact_id
        super().__init__(f"Generation of {artifact_id!r} failed: {message}")


class ProjectGenerator(Protocol):
    """Anything that can turn a request into a generated project root."""

    def generate(self, request: GenerationRequest, metadata: GeneratorMetadata) -> Path:
        ...


# ---------------------------------------------------------------------------
# Template generator
# ---------------------------------------------------------------------------


class TemplateProjectGenerator:
    """Generates an application skeleton from Jinja2 templates.

    Every call works in a fresh ``tempfile.mkdtemp`` directory under
    *tmp_dir* (the system temp dir by default), so repeated generations of
    the same app never collide.

    The generated tree for a request with ``base_dir="time-source"`` and
    ``package_name="org.example.time"`` is::

        <root>/time-source/pom.xml
        <root>/time-source/src/main/java/org/example/time/TimeSourceApplication.java
        <root>/time-source/src/main/resources/application.properties
        <root>/time-source/src/test/java/org/example/time/TimeSourceApplicationTests.java
    """

    def __init__(
        self,
        tmp_dir: str | Path | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.tmp_dir = Path(tmp_dir) if tmp_dir is not None else None
        self.renderer = renderer or TemplateRenderer()

    # -- Public API --------------------------------------------------------

    def generate(self, request: GenerationRequest, metadata: GeneratorMetadata) -> Path:
        """Generate the project described by *request*.

        Returns:
            The scratch root containing the ``request.base_dir`` subdirectory.

        Raises:
            GeneratorError: If the request references dependencies or BOMs the
                metadata does not declare, or if writing the tree fails.
        """
        context = self._build_context(request, metadata)

        try:
            if self.tmp_dir is not None:
                self.tmp_dir.mkdir(parents=True, exist_ok=True)
            root = Path(tempfile.mkdtemp(prefix=f"{request.artifact_id}-", dir=self.tmp_dir))
        except OSError as exc:
            raise GeneratorError(request.artifact_id, f"cannot create scratch directory ({exc})") from exc

        project_dir = root / request.base_dir
        try:
            self._render_project(project_dir, context)
        except OSError as exc:
            shutil.rmtree(root, ignore_errors=True)
            raise GeneratorError(request.artifact_id, f"cannot write project files ({exc})") from exc

        logger.info("Generated project %s at %s", request.artifact_id, project_dir)
        return root

    # -- Context building --------------------------------------------------

    def _build_context(
        self, request: GenerationRequest, metadata: GeneratorMetadata
    ) -> dict[str, Any]:
        """Validate *request* against *metadata* and build the template context."""
        if not is_safe_module_name(request.base_dir):
            raise GeneratorError(request.artifact_id, f"unsafe base directory {request.base_dir!r}")

        java_version = request.java_version or metadata.default_java_version
        if java_version not in metadata.java_versions:
            raise GeneratorError(
                request.artifact_id,
                f"unsupported Java version {java_version!r} "
                f"(known: {', '.join(metadata.java_versions)})",
            )

        boms: list[BomEntry] = []
        for dep in request.dependencies:
            if metadata.find_dependency(dep.id) is None:
                raise GeneratorError(request.artifact_id, f"unknown dependency {dep.id!r}")
            if dep.bom is None:
                if not dep.version:
                    raise GeneratorError(
                        request.artifact_id,
                        f"dependency {dep.id!r} has neither a version nor a BOM",
                    )
                continue
            bom = metadata.get_bom(dep.bom)
            if bom is None:
                raise GeneratorError(
                    request.artifact_id, f"dependency {dep.id!r} references unknown BOM {dep.bom!r}"
                )
            if bom not in boms:
                boms.append(bom)

        return {
            "request": request,
            "metadata": metadata,
            "boms": boms,
            "java_version": java_version,
            "class_name": f"{to_pascal(request.name)}Application",
        }

    # -- Rendering ---------------------------------------------------------

    def _render_project(self, project_dir: Path, ctx: dict[str, Any]) -> None:
        request: GenerationRequest = ctx["request"]
        package_path = Path(*request.package_name.split("."))
        class_name = ctx["class_name"]

        files = [
            ("app/pom.xml.j2", project_dir / "pom.xml"),
            (
                "app/Application.java.j2",
                project_dir / "src" / "main" / "java" / package_path / f"{class_name}.java",
            ),
            (
                "app/application.properties.j2",
                project_dir / "src" / "main" / "resources" / "application.properties",
            ),
            (
                "app/ApplicationTests.java.j2",
                project_dir / "src" / "test" / "java" / package_path / f"{class_name}Tests.java",
            ),
        ]
        for template_name, output in files:
            self.renderer.render_to_file(template_name, output, ctx)
