"""appgen project generator -- renders application skeletons.

Quick usage::

    from appgen.generator import TemplateProjectGenerator
    from appgen.metadata import MetadataBuilder
    from appgen.models import GenerationRequest

    generator = TemplateProjectGenerator(tmp_dir="/tmp/appgen")
    root = generator.generate(request, MetadataBuilder.with_defaults().build())
    # root / request.base_dir now holds the generated app
"""

from appgen.generator.generator import (
    GeneratorError,
    ProjectGenerator,
    TemplateProjectGenerator,
)
from appgen.generator.templates import TemplateRenderer

__all__ = [
    "GeneratorError",
    "ProjectGenerator",
    "TemplateProjectGenerator",
    "TemplateRenderer",
]
