"""Tests for the pipeline runner orchestration helpers."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from sitemapper.app.pipeline import PipelineHooks, PipelineRunner, PipelineStep, build_default_runner
from sitemapper.settings import AppConfig, BatchSettings, HttpSettings, PathSettings, ServerSettings, SitemapDefaults
from sitemapper.sitemap.models import LocalizationPolicy, OutputFormat, Site, SitemapOptions
from tests.stubs import StubFetcher, page


def test_runner_skips_completed_steps() -> None:
    order: list[str] = []

    steps = [
        PipelineStep("aggregate", lambda ctx: order.append("aggregate")),
        PipelineStep("synthesize", lambda ctx: order.append("synthesize"), depends_on=("aggregate",)),
    ]
    runner = PipelineRunner(steps)

    asyncio.run(runner.run(object(), completed={"aggregate"}))

    assert order == ["synthesize"]


def test_runner_awaits_coroutine_handlers() -> None:
    order: list[str] = []

    async def step(_: object) -> None:
        await asyncio.sleep(0)
        order.append("async")

    asyncio.run(PipelineRunner([PipelineStep("a", step)]).run(object()))

    assert order == ["async"]


def test_runner_rejects_missing_dependencies() -> None:
    steps = [
        PipelineStep("a", lambda ctx: None),
        PipelineStep("b", lambda ctx: None, depends_on=("a",)),
    ]

    with pytest.raises(RuntimeError, match="depends on missing steps: a"):
        asyncio.run(PipelineRunner(steps).run(object(), only=["b"]))


def test_runner_invokes_hooks_and_propagates_errors() -> None:
    events: list[str] = []

    def step_a(_: object) -> None:
        events.append("run:a")

    async def step_b(_: object) -> None:
        events.append("run:b")
        raise RuntimeError("boom")

    hooks = PipelineHooks(
        before_step=lambda name, _: events.append(f"before:{name}"),
        after_step=lambda name, _: events.append(f"after:{name}"),
        on_error=lambda name, _, exc: events.append(f"error:{name}:{type(exc).__name__}"),
    )

    steps = [
        PipelineStep("a", step_a),
        PipelineStep("b", step_b, depends_on=("a",)),
    ]
    runner = PipelineRunner(steps)

    with pytest.raises(RuntimeError):
        asyncio.run(runner.run(object(), hooks=hooks))

    assert events == [
        "before:a",
        "run:a",
        "after:a",
        "before:b",
        "run:b",
        "error:b:RuntimeError",
    ]


def _config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        default_site="Demo",
        server=ServerSettings(url="https://content.example.com"),
        http=HttpSettings(),
        paths=PathSettings(output_dir=tmp_path, secrets_file=tmp_path / "secrets.ini"),
        batches=BatchSettings(),
        sitemap=SitemapDefaults(),
    )


def test_default_pipeline_writes_variants_sitemap(tmp_path: Path) -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "about")]
    fetcher = StubFetcher(
        site=Site(id="s1", name="Demo", default_language="en", channel_id="CH1"),
        policy=LocalizationPolicy(required_locales=("en", "fr")),
        structures={None: structure, "fr": structure},
    )
    options = SitemapOptions(
        site="Demo",
        site_url="https://example.com",
        format=OutputFormat.XML_VARIANTS,
        output_file=tmp_path / "DemoSiteMap.xml",
    )
    runner, context = build_default_runner(_config(tmp_path), options, fetcher)

    asyncio.run(runner.run(context))

    assert runner.step_names == ["aggregate", "changefreq", "synthesize", "resolve", "serialize"]
    assert context.written == [tmp_path / "DemoSiteMap.xml"]
    content = (tmp_path / "DemoSiteMap.xml").read_text(encoding="utf-8")
    assert content.count("<url>") == 2
    assert content.count("<xhtml:link") == 4
