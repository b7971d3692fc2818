"""
ViewLab run pipeline.

One target is one unit of work: every view is trained against it, the
per-view predictions are fused, and the gain is tested. Targets share
nothing except read-only views and the cache store, so they can run in
any order on any ``concurrent.futures.Executor``.

Usage:
    >>> from concurrent.futures import ProcessPoolExecutor
    >>> from viewlab import RunConfig, build_views, run
    >>>
    >>> views = build_views(expr, positions, [DistanceWeightedSpec(radius=10)])
    >>> with ProcessPoolExecutor(max_workers=8) as pool:
    ...     result = run(views, RunConfig(), executor=pool)
    >>> print(result.summary())
"""

from concurrent.futures import Executor, as_completed
from dataclasses import dataclass, field
from functools import partial
from typing import Optional, Dict, List, Any, Sequence, Tuple
import logging

import pandas as pd

from .core.config import RunConfig
from .core.errors import ConfigurationError, ViewLabError
from .views.builder import View, ViewCollection
from .models.folds import FoldAssignment
from .models.learner import PerViewResult, train
from .models.meta import FusedResult, combine
from .cache.fingerprint import fingerprint
from .cache.store import CacheStore, FileCacheStore
from .cache.result_cache import ResultCache, retry_once
from .results.aggregate import AggregatedResultSet

logger = logging.getLogger(__name__)


@dataclass
class TargetFailure:
    """A target that could not be computed."""
    target: str
    error: str
    message: str

    @classmethod
    def from_exception(cls, target: str, exc: BaseException) -> "TargetFailure":
        return cls(target=target, error=type(exc).__name__, message=str(exc))

    def to_dict(self) -> Dict[str, Any]:
        return {"target": self.target, "error": self.error, "message": self.message}


@dataclass
class RunResult:
    """
    Outcome of a run over many targets.

    Attributes:
        run_key: Fingerprint of the run (views, folds, config, targets).
        sample: Sample name used in aggregated tables.
        views: View names, in collection order.
        targets: Requested targets.
        fused: FusedResult per successful target.
        failures: Targets that failed, with reasons.
        result_keys: Cache key per successful target.
        locations_key: Fingerprint of the location set.
    """
    run_key: str
    sample: str
    views: List[str]
    targets: List[str]
    fused: Dict[str, FusedResult] = field(default_factory=dict)
    failures: List[TargetFailure] = field(default_factory=list)
    result_keys: Dict[str, str] = field(default_factory=dict)
    locations_key: str = ""

    @property
    def n_succeeded(self) -> int:
        return len(self.fused)

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    @property
    def complete(self) -> bool:
        """True when every requested target produced a result."""
        return self.n_failed == 0 and self.n_succeeded == len(self.targets)

    @property
    def results(self) -> AggregatedResultSet:
        """Aggregated tables for this run."""
        return AggregatedResultSet.from_fused(
            [self.fused[t] for t in self.targets if t in self.fused],
            sample=self.sample,
            views=self.views,
            failures=[f.to_dict() for f in self.failures],
            locations_key=self.locations_key,
        )

    def marker(self) -> Dict[str, Any]:
        """Completion marker payload."""
        return {
            "run_key": self.run_key,
            "sample": self.sample,
            "views": self.views,
            "targets": self.targets,
            "result_keys": self.result_keys,
            "failures": [f.to_dict() for f in self.failures],
            "locations_key": self.locations_key,
            "n_succeeded": self.n_succeeded,
            "n_failed": self.n_failed,
            "complete": self.complete,
        }

    def summary(self) -> str:
        """Human-readable run summary."""
        status = "COMPLETE" if self.complete else "FINISHED WITH FAILURES"
        lines = [
            "=" * 60,
            f"RUN {self.sample}: {status}",
            "=" * 60,
            f"  Views: {', '.join(self.views)}",
            f"  Targets succeeded: {self.n_succeeded}/{len(self.targets)}",
            f"  Targets failed: {self.n_failed}",
        ]
        if self.failures:
            lines.extend(["", "FAILURES:"])
            for failure in self.failures:
                lines.append(f"  {failure.target}: {failure.error}: {failure.message}")
        lines.append("=" * 60)
        return "\n".join(lines)


def per_view_key(
    view: View,
    target: str,
    target_values: pd.Series,
    folds: FoldAssignment,
    config: RunConfig,
) -> str:
    """Cache key of one (view, target) learner result."""
    return fingerprint(
        "per_view", view, target, target_values, folds,
        config.learner, config.seed,
    )


def target_key(
    views: ViewCollection,
    target: str,
    folds: FoldAssignment,
    config: RunConfig,
) -> str:
    """Cache key of one target's fused result."""
    return fingerprint("fused", views, target, folds, config)


def run_target(
    views: ViewCollection,
    target: str,
    folds: FoldAssignment,
    config: RunConfig,
    cache: Optional[ResultCache] = None,
) -> FusedResult:
    """
    Full pass for one target: per-view learners, meta-model, significance.

    Per-view results are cached individually when ``cache`` is given, so
    a target interrupted halfway resumes from its finished views.
    """
    if target not in views.intrinsic.data.columns:
        raise ConfigurationError(f"Unknown target: {target!r}")

    y = views.intrinsic.data[target]
    per_view: Dict[str, PerViewResult] = {}

    for view in views:
        compute = partial(train, view, target, y, folds, config.learner, config.seed)
        if cache is not None:
            key = per_view_key(view, target, y, folds, config)
            per_view[view.name] = cache.get_or_compute(key, compute)
        else:
            per_view[view.name] = compute()

    return combine(
        y,
        {name: r.predictions for name, r in per_view.items()},
        folds,
        intrinsic=views.intrinsic.name,
        alpha=config.meta_alpha,
        importances={name: r.importances for name, r in per_view.items()},
        target=target,
        uninformative=[name for name, r in per_view.items() if r.trivial],
    )


def _target_task(
    views: ViewCollection,
    target: str,
    folds: FoldAssignment,
    config: RunConfig,
    store: CacheStore,
    cached: bool,
) -> Tuple[str, FusedResult]:
    """Worker entry point; module-level so process pools can pickle it."""
    cache = ResultCache(store, enabled=cached)
    key = target_key(views, target, folds, config)
    fused = cache.get_or_compute(
        key, lambda: run_target(views, target, folds, config, cache)
    )
    return key, fused


def _validate(
    views: ViewCollection,
    config: RunConfig,
    targets: Optional[Sequence[str]],
) -> List[str]:
    if not isinstance(views, ViewCollection):
        raise ConfigurationError("views must be a ViewCollection")
    if views.intrinsic.name != config.intrinsic_name:
        raise ConfigurationError(
            f"Intrinsic view is {views.intrinsic.name!r}, "
            f"config expects {config.intrinsic_name!r}"
        )
    if targets is None:
        return list(views.targets)

    targets = list(dict.fromkeys(targets))
    unknown = [t for t in targets if t not in views.targets]
    if unknown:
        raise ConfigurationError(f"Unknown target(s): {unknown}")
    return targets


def run(
    views: ViewCollection,
    config: Optional[RunConfig] = None,
    store: Optional[CacheStore] = None,
    executor: Optional[Executor] = None,
    targets: Optional[Sequence[str]] = None,
    sample: Optional[str] = None,
    cached: bool = True,
) -> RunResult:
    """
    Run the multi-view analysis for every target.

    Configuration and view problems raise before any target is
    scheduled. After that, a failing target is recorded in
    ``RunResult.failures`` and never stops the others.

    Args:
        views: View collection (intrinsic view first).
        config: Run configuration, defaults to ``RunConfig.default()``.
        store: Cache store, defaults to a FileCacheStore at
            ``config.cache_dir``. Use a FileCacheStore with process pools.
        executor: Worker pool; targets run serially in this process when
            omitted.
        targets: Targets to model, defaults to every intrinsic feature.
        sample: Name stamped on aggregated rows, defaults to the run key.
        cached: Read and write cached results.

    Returns:
        RunResult with per-target results and failures. A completion
        marker is written to the store under ``run_key``.

    Raises:
        ConfigurationError: Invalid configuration, views or targets.
        InsufficientData: Fewer locations than folds.
    """
    config = config or RunConfig.default()
    targets = _validate(views, config, targets)
    folds = FoldAssignment.create(views.locations, config.n_folds, config.seed)
    store = store if store is not None else FileCacheStore(config.cache_dir)

    run_key = fingerprint("run", views, folds, config, sorted(targets))
    result = RunResult(
        run_key=run_key,
        sample=sample or run_key[:12],
        views=views.names,
        targets=targets,
        locations_key=fingerprint(views.locations),
    )

    logger.info(
        f"Running {len(targets)} target(s) over {len(views)} view(s) "
        f"(folds={config.n_folds}, seed={config.seed}, "
        f"executor={type(executor).__name__ if executor else 'serial'})"
    )

    task = partial(
        _target_task, views, folds=folds, config=config, store=store, cached=cached
    )

    def record(target: str, outcome: Tuple[str, FusedResult]) -> None:
        key, fused = outcome
        result.fused[target] = fused
        result.result_keys[target] = key

    def fail(target: str, exc: Exception) -> None:
        if isinstance(exc, ViewLabError):
            logger.warning(f"Target {target} failed: {exc}")
        else:
            logger.error(f"Target {target} failed unexpectedly: {exc!r}")
        result.failures.append(TargetFailure.from_exception(target, exc))

    if executor is None:
        for target in targets:
            try:
                record(target, task(target=target))
            except Exception as e:
                fail(target, e)
    else:
        futures = {executor.submit(task, target=target): target for target in targets}
        for future in as_completed(futures):
            target = futures[future]
            try:
                record(target, future.result())
            except Exception as e:
                fail(target, e)

    result.fused = {t: result.fused[t] for t in targets if t in result.fused}
    result.result_keys = {t: result.result_keys[t] for t in result.fused}
    result.failures.sort(key=lambda f: targets.index(f.target))

    marker = result.marker()
    retry_once("marker write", lambda: store.mark_complete(run_key, marker))

    logger.info(
        f"Run {result.sample} finished: {result.n_succeeded} succeeded, "
        f"{result.n_failed} failed"
    )
    return result
