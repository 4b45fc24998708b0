# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Analysis engine orchestrating classification, template analysis and rules."""

import concurrent.futures
import logging
import threading
import time
from collections.abc import Sequence

from ngsmells.classifier import classify_artifact
from ngsmells.companion import (
    ChainedCompanionLookup,
    CompanionLookup,
    MappingCompanionLookup,
    NullCompanionLookup,
)
from ngsmells.config import RuleConfig
from ngsmells.model import Finding, Kind, RuleFailure, SourceArtifact
from ngsmells.registry import DispatchOutcome, Dispatcher, RuleRegistry
from ngsmells.result import AnalysisResult, aggregate
from ngsmells.template_parser import TemplateAnalyzer

logger = logging.getLogger(__name__)


class AnalysisEngine:
    """Analyze a batch of source artifacts into an aggregated result."""

    def __init__(
        self,
        registry: RuleRegistry | None = None,
        config: RuleConfig | None = None,
        template_analyzer: TemplateAnalyzer | None = None,
        companions: CompanionLookup | None = None,
        max_workers: int = 4,
        progress_batch_size: int = 50,
    ) -> None:
        """Initialize the engine with explicit collaborators.

        Args:
            registry: Rules per artifact kind; the default registry when omitted.
            config: Rule thresholds; defaults when omitted.
            template_analyzer: Structural analyzer for templates.
            companions: Lookup consulted after the batch itself for companion files.
            max_workers: Maximum number of worker threads.
            progress_batch_size: Emit a progress log line every N artifacts.

        Raises:
            ValueError: If ``max_workers`` or ``progress_batch_size`` is not
                greater than zero.
        """
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if progress_batch_size <= 0:
            raise ValueError("progress_batch_size must be > 0")
        self._registry = registry or RuleRegistry.default()
        self._dispatcher = Dispatcher(self._registry, config or RuleConfig())
        self._template_analyzer = template_analyzer or TemplateAnalyzer()
        self._companions = companions or NullCompanionLookup()
        self._max_workers = max_workers
        self._progress_batch_size = progress_batch_size

    def analyze(
        self,
        project_path: str,
        artifacts: Sequence[SourceArtifact] | None,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisResult:
        """Run every applicable rule over ``artifacts``.

        Artifacts are processed concurrently and their findings are joined
        in the order the artifacts were given.

        Args:
            project_path: Root of the analyzed project, reported in the result.
            artifacts: Artifacts in scan order.
            cancel_event: When set, artifacts that have not started are skipped.

        Returns:
            Aggregated result; marked cancelled when ``cancel_event`` was set.

        Raises:
            ValueError: If ``artifacts`` is ``None``.
        """
        if artifacts is None:
            raise ValueError("artifacts must not be None")
        started_at = time.monotonic()
        total = len(artifacts)
        logger.info(f"Analysis started (project_path={project_path} artifacts={total})")

        batch = MappingCompanionLookup({artifact.path: artifact.content for artifact in artifacts})
        companions = ChainedCompanionLookup([batch, self._companions])
        outcomes: list[DispatchOutcome | None] = [None] * total
        completed = 0

        with concurrent.futures.ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            future_to_index = {
                executor.submit(self._analyze_one, artifact, companions, cancel_event): index
                for index, artifact in enumerate(artifacts)
            }
            for future in concurrent.futures.as_completed(future_to_index):
                outcomes[future_to_index[future]] = future.result()
                completed += 1
                if completed % self._progress_batch_size == 0 or completed == total:
                    logger.info(f"Analysis progress (completed={completed} total={total})")

        analyzed = [outcome for outcome in outcomes if outcome is not None]
        cancelled = cancel_event is not None and cancel_event.is_set()
        if cancelled:
            logger.warning(
                f"Analysis cancelled (analyzed={len(analyzed)} skipped={total - len(analyzed)})"
            )
        failures: list[RuleFailure] = [failure for outcome in analyzed for failure in outcome.failures]
        per_artifact: list[tuple[Finding, ...]] = [outcome.findings for outcome in analyzed]
        duration_ms = int(round((time.monotonic() - started_at) * 1000))
        result = aggregate(
            project_path,
            per_artifact,
            duration_ms=duration_ms,
            failures=failures,
            cancelled=cancelled,
            artifact_count=len(analyzed),
        )
        logger.info(
            f"Analysis finished (findings={result.total_findings} failures={len(failures)} "
            f"duration_ms={duration_ms})"
        )
        return result

    def _analyze_one(
        self,
        artifact: SourceArtifact,
        companions: CompanionLookup,
        cancel_event: threading.Event | None,
    ) -> DispatchOutcome | None:
        if cancel_event is not None and cancel_event.is_set():
            return None
        classified = classify_artifact(artifact)
        facts = None
        if classified.kind is Kind.TEMPLATE:
            facts = self._template_analyzer.analyze(artifact.content, source=artifact.path)
        logger.debug(f"Dispatching rules (file_path={artifact.path} kind={classified.kind.value})")
        return self._dispatcher.dispatch(classified, facts, companions=companions)
