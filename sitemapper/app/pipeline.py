"""Composable pipeline for aggregate → changefreq → synthesize → resolve → serialize."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, Sequence

from ..remote import SiteFetcher
from ..settings import AppConfig
from ..sitemap import (
    ChangeFrequencyEstimator,
    MasterItemResolver,
    OutputFormat,
    SiteModel,
    SiteModelAggregator,
    SitemapOptions,
    SitemapSerializer,
    SitemapURLEntry,
    URLSynthesizer,
)
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

StepHandler = Callable[["PipelineContext"], Awaitable[None] | None]


@dataclass(slots=True)
class PipelineContext:
    """State handed from one step to the next."""

    config: AppConfig
    options: SitemapOptions
    fetcher: SiteFetcher
    model: SiteModel | None = None
    changefreqs: dict[str, str] = field(default_factory=dict)
    entries: list[SitemapURLEntry] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)

    def require_model(self) -> SiteModel:
        if self.model is None:
            raise RuntimeError("site model has not been aggregated yet")
        return self.model


@dataclass(slots=True)
class PipelineStep:
    name: str
    handler: StepHandler
    depends_on: tuple[str, ...] = ()


@dataclass(slots=True)
class PipelineHooks:
    before_step: Callable[[str, Any], None] | None = None
    after_step: Callable[[str, Any], None] | None = None
    on_error: Callable[[str, Any, BaseException], None] | None = None


class PipelineRunner:
    """Executes registered pipeline steps respecting dependencies.

    Handlers may be plain functions or coroutines.
    """

    def __init__(self, steps: Sequence[PipelineStep]) -> None:
        self._step_map: Dict[str, PipelineStep] = {step.name: step for step in steps}
        self._order = [step.name for step in steps]

    @property
    def steps(self) -> list[PipelineStep]:
        return [self._step_map[name] for name in self._order]

    @property
    def step_names(self) -> list[str]:
        return list(self._order)

    async def run(
        self,
        context: Any,
        *,
        only: Iterable[str] | None = None,
        completed: Iterable[str] | None = None,
        hooks: PipelineHooks | None = None,
    ) -> None:
        selected = set(only) if only else None
        executed: set[str] = set(completed or ())
        hooks = hooks or PipelineHooks()
        for name in self._order:
            if name in executed:
                continue
            if selected is not None and name not in selected:
                continue
            step = self._step_map[name]
            if any(dep not in executed for dep in step.depends_on):
                missing = ", ".join(dep for dep in step.depends_on if dep not in executed)
                raise RuntimeError(f"Step '{name}' depends on missing steps: {missing}")
            LOGGER.info(
                "Running pipeline step: %s", name, extra={"event": "pipeline.step", "step": name}
            )
            if hooks.before_step:
                hooks.before_step(name, context)
            try:
                result = step.handler(context)
                if inspect.isawaitable(result):
                    await result
            except BaseException as exc:
                if hooks.on_error:
                    hooks.on_error(name, context, exc)
                raise
            if hooks.after_step:
                hooks.after_step(name, context)
            executed.add(name)


async def _run_aggregate(context: PipelineContext) -> None:
    aggregator = SiteModelAggregator(context.fetcher, context.options, context.config.batches)
    context.model = await aggregator.build()


async def _run_changefreq(context: PipelineContext) -> None:
    if not context.options.auto_changefreq:
        return
    model = context.require_model()
    estimator = ChangeFrequencyEstimator(
        context.fetcher,
        default=context.options.default_changefreq,
        batch_size=context.config.batches.revisions,
    )
    context.changefreqs = await estimator.estimate_files(model.page_files)


def _run_synthesize(context: PipelineContext) -> None:
    synthesizer = URLSynthesizer(context.require_model(), context.options, context.changefreqs)
    context.entries = synthesizer.synthesize()


async def _run_resolve(context: PipelineContext) -> None:
    if context.options.format is not OutputFormat.XML_VARIANTS:
        return
    resolver = MasterItemResolver(context.fetcher, batch_size=context.config.batches.variations)
    context.entries = await resolver.resolve(context.entries)


def _run_serialize(context: PipelineContext) -> None:
    model = context.require_model()
    serializer = SitemapSerializer(
        context.options,
        default_locale=model.locales.default,
        locales=model.locales.output,
    )
    files = serializer.render(context.entries)
    context.written = serializer.write(files)


DEFAULT_STEPS = [
    PipelineStep("aggregate", _run_aggregate),
    PipelineStep("changefreq", _run_changefreq, depends_on=("aggregate",)),
    PipelineStep("synthesize", _run_synthesize, depends_on=("aggregate", "changefreq")),
    PipelineStep("resolve", _run_resolve, depends_on=("synthesize",)),
    PipelineStep("serialize", _run_serialize, depends_on=("resolve",)),
]


def build_default_runner(
    config: AppConfig, options: SitemapOptions, fetcher: SiteFetcher
) -> tuple[PipelineRunner, PipelineContext]:
    return PipelineRunner(DEFAULT_STEPS), PipelineContext(
        config=config, options=options, fetcher=fetcher
    )


__all__ = [
    "DEFAULT_STEPS",
    "PipelineContext",
    "PipelineHooks",
    "PipelineRunner",
    "PipelineStep",
    "build_default_runner",
]
