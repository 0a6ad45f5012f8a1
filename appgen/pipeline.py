"""appgen batch pipeline.

Generates every app in the catalogue and merges each one into its container
project:

1. GENERATE -- build a request and metadata catalogue, run the generator.
2. RELOCATE -- replace ``<container>/<key>`` with the generated module.
3. REGISTER -- add ``<key>`` to the container descriptor and persist it.

Apps are processed strictly one after another. A failure only affects the app
it happened to, except when the container itself is unusable (malformed
descriptor, directory cannot be created): then the batch stops and the
remaining apps are reported as not attempted.

Usage::

    python -m appgen apps.yml
    python -m appgen apps.yml --output ./stream-apps --java-version 17
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

from pydantic import ValidationError
from rich.panel import Panel
from yaml import YAMLError

from appgen.config import Config
from appgen.container import (
    FORMATS,
    ContainerError,
    DescriptorStore,
    MalformedDescriptor,
)
from appgen.generator import GeneratorError, ProjectGenerator, TemplateProjectGenerator
from appgen.merge import RelocationError, cleanup, relocate
from appgen.metadata import GeneratorMetadata, MetadataBuilder
from appgen.models import AppDescriptor, AppOutcome, BatchReport, GenerationRequest
from appgen.utils import (
    STATUS_COLORS,
    configure_logging,
    console,
    format_duration,
    print_app_header,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
)

logger = logging.getLogger(__name__)


class BatchAborted(Exception):
    """Raised internally when the container cannot be used for any further app."""


# ---------------------------------------------------------------------------
# Batch pipeline
# ---------------------------------------------------------------------------


class BatchPipeline:
    """Generates and merges every app of a catalogue.

    Attributes:
        config: Catalogue and shared settings of the run.
        generator: Project generator invoked once per app.
        store: Container descriptor store.
    """

    def __init__(
        self,
        config: Config,
        generator: ProjectGenerator | None = None,
        store: DescriptorStore | None = None,
    ) -> None:
        self.config = config
        self.generator = generator or TemplateProjectGenerator(tmp_dir=config.tmp_dir)
        self.store = store or DescriptorStore(FORMATS[config.descriptor_format]())

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def build_request(self, app: AppDescriptor) -> GenerationRequest:
        return GenerationRequest.for_app(app, self.config.bom.name, self.config.java_version)

    def build_metadata(self, request: GenerationRequest) -> GeneratorMetadata:
        """Compose defaults, the shared BOM, the Java version and the app's dependency group."""
        bom = self.config.bom
        return (
            MetadataBuilder.with_defaults()
            .add_bom(bom.name, bom.group_id, bom.artifact_id, bom.version)
            .add_java_version(self.config.java_version)
            .add_dependency_group(request.artifact_id, request.dependencies)
            .build()
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> BatchReport:
        """Process the whole catalogue and return the per-app outcomes."""
        start = time.monotonic()
        apps = list(self.config.apps.values())
        report = BatchReport()

        console.print(
            Panel(
                f"[bold bright_cyan]appgen batch[/bold bright_cyan]\n"
                f"Apps      : {len(apps)}\n"
                f"Container : {self.config.generated_project_home or '(per app)'}\n"
                f"BOM       : {self.config.bom.group_id}:{self.config.bom.artifact_id}:"
                f"{self.config.bom.version}",
                title="[bold]Batch Start[/bold]",
                border_style="bright_cyan",
            )
        )

        for index, app in enumerate(apps, start=1):
            print_app_header(index, len(apps), app.key)
            try:
                outcome = self.process_app(app)
            except BatchAborted as exc:
                report.aborted = str(exc)
                report.outcomes.append(AppOutcome.merge_failed(app.key, str(exc)))
                print_error(f"  Batch aborted: {exc}")
                for skipped in apps[index:]:
                    report.outcomes.append(
                        AppOutcome.merge_failed(skipped.key, f"not attempted: batch aborted ({exc})")
                    )
                break
            report.outcomes.append(outcome)

        self._print_final_summary(report, time.monotonic() - start)
        return report

    def process_app(self, app: AppDescriptor) -> AppOutcome:
        """Generate *app* and merge it into its container.

        Raises:
            BatchAborted: If the container descriptor is malformed or the
                container directory cannot be established.
        """
        request = self.build_request(app)
        try:
            generated_root = self.generator.generate(request, self.build_metadata(request))
        except GeneratorError as exc:
            logger.error("[%s] %s", app.key, exc)
            print_error(f"  {exc}")
            return AppOutcome.merge_failed(app.key, str(exc))

        destination = self.config.destination_for(app)
        if destination is None:
            generated_path = generated_root / request.base_dir
            logger.info("[%s] No destination configured; project is at %s", app.key, generated_path)
            print_warning(f"  No destination configured -- project left at {generated_path}")
            return AppOutcome.no_destination(app.key, generated_path)

        try:
            module_path = self.merge(app.key, generated_root, destination)
        except (MalformedDescriptor, ContainerError) as exc:
            logger.error("[%s] %s", app.key, exc)
            raise BatchAborted(str(exc)) from exc
        except RelocationError as exc:
            logger.error("[%s] %s", app.key, exc)
            print_error(f"  {exc}")
            return AppOutcome.merge_failed(app.key, str(exc))
        finally:
            self._discard_generated_root(app.key, generated_root)

        print_success(f"  Merged into {module_path}")
        return AppOutcome.merged(app.key, module_path)

    def merge(self, key: str, generated_root: Path, container_dir: Path) -> Path:
        """Relocate the generated module, then register it in the container descriptor.

        The descriptor is loaded before the move so a malformed container is
        detected without touching the filesystem, but it is only written once
        the module directory is in place.
        """
        descriptor = self.store.load_or_create(container_dir, key)
        module_path = relocate(
            generated_root, key, container_dir, self.config.placeholder_test_patterns
        )
        if self.store.add_module(descriptor, key):
            self.store.persist(descriptor, container_dir)
        return module_path

    @staticmethod
    def _discard_generated_root(key: str, generated_root: Path) -> None:
        try:
            cleanup(generated_root)
        except OSError as exc:
            logger.warning("[%s] Could not remove scratch directory %s: %s", key, generated_root, exc)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _print_final_summary(self, report: BatchReport, total_elapsed: float) -> None:
        """Print the per-app table and the final status panel."""
        rows: dict[str, str] = {}
        for outcome in report.outcomes:
            color = STATUS_COLORS[outcome.status.value]
            detail = outcome.reason if outcome.reason else str(outcome.path)
            rows[outcome.key] = f"[{color}]{outcome.status.value}[/{color}] {detail}"
        if rows:
            console.print()
            print_summary_table(rows, title="Batch Results")

        counts = report.counts()
        if report.success:
            border_style = "bold green"
            status_text = "[bold green]BATCH SUCCEEDED[/bold green]"
        else:
            border_style = "bold red"
            status_text = "[bold red]BATCH FAILED[/bold red]"

        detail_lines = [
            status_text,
            "",
            f"Duration       : {format_duration(total_elapsed)}",
            f"Merged         : {counts['merged']}",
            f"No destination : {counts['no_destination']}",
            f"Failed         : {counts['merge_failed']}",
        ]
        if report.aborted:
            detail_lines.append(f"Aborted        : {report.aborted}")

        console.print(
            Panel(
                "\n".join(detail_lines),
                title="[bold]Batch Complete[/bold]",
                border_style=border_style,
            )
        )


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for ``python -m appgen`` and the ``appgen`` script."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="appgen",
        description="Generate apps from a catalogue and merge them into a container project",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  appgen apps.yml\n"
            "  appgen apps.yml -o ./stream-apps\n"
            "  appgen apps.json --java-version 17 --format json\n"
        ),
    )
    parser.add_argument("catalogue", help="Path to the app catalogue (YAML or JSON)")
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Container directory for every app (overrides per-app destinations)",
    )
    parser.add_argument("--java-version", default=None, help="Target Java version")
    parser.add_argument("--tmp-dir", default=None, help="Scratch directory for generation")
    parser.add_argument(
        "--format",
        choices=sorted(FORMATS),
        default=None,
        help="Container descriptor format (default: xml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = Config.load(args.catalogue).with_env_overrides()
    except FileNotFoundError:
        console.print(f"[bold red]Error:[/bold red] Catalogue file not found: {args.catalogue}")
        return 2
    except (ValidationError, YAMLError, ValueError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] Invalid catalogue {args.catalogue}:\n{exc}")
        return 2

    overrides: dict[str, object] = {}
    if args.output:
        overrides["generated_project_home"] = Path(args.output)
    if args.java_version:
        overrides["java_version"] = args.java_version
    if args.tmp_dir:
        overrides["tmp_dir"] = Path(args.tmp_dir)
    if args.format:
        overrides["descriptor_format"] = args.format
    if overrides:
        config = config.model_copy(update=overrides)

    report = BatchPipeline(config).run()
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
