"""appgen -- batch app generation merged into a multi-module container project.

Quick usage::

    from appgen import BatchPipeline, Config

    config = Config.load("apps.yml")
    report = BatchPipeline(config).run()
    if not report.success:
        ...
"""

from appgen.config import BomConfig, Config
from appgen.models import AppDescriptor, AppOutcome, BatchReport, DependencyRef, OutcomeStatus
from appgen.pipeline import BatchPipeline

__all__ = [
    "AppDescriptor",
    "AppOutcome",
    "BatchPipeline",
    "BatchReport",
    "BomConfig",
    "Config",
    "DependencyRef",
    "OutcomeStatus",
]

__version__ = "0.1.0"
