"""
peptidedb command line.

    peptidedb init-db
    peptidedb import-vendors config/vendors.yaml
    peptidedb scan-vendors
    peptidedb enrich-peptides --limit 50 --slug semaglutide
    peptidedb ingest-social
    peptidedb rate-vendors
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import PipelineConfig
from .db.session import create_all, get_engine, make_session_factory, session_scope
from .errors import ConfigurationError
from .ingest.bundle import AdapterSet, BundleCollector
from .ingest.http import HttpFetcher
from .ingest.social import default_social_adapters
from .ingest.vendor_site import VendorSiteScanner, default_seed_path, load_vendor_seeds
from .persist.cache import LookupCache
from .persist.store import EnrichmentStore
from .pipeline.orchestrator import (
    PeptideEnrichmentOrchestrator,
    RunSummary,
    SocialSignalOrchestrator,
    VendorCatalogOrchestrator,
)

app = typer.Typer(help="Evidence enrichment for the peptide and vendor catalog")
console = Console()


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # urllib3 retry chatter duplicates our own retry warnings
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class _State:
    config_path: Optional[str] = None
    database_url: Optional[str] = None


state = _State()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    config: Optional[Path] = typer.Option(None, "--config", help="Pipeline YAML (default config/pipeline.yaml)"),
    database_url: Optional[str] = typer.Option(None, "--database-url", help="Overrides DATABASE_URL"),
):
    configure_logging(logging.DEBUG if verbose else logging.INFO)
    state.config_path = str(config) if config else None
    state.database_url = database_url


def _load_config() -> PipelineConfig:
    return PipelineConfig.load(state.config_path)


def _engine(cfg: PipelineConfig):
    return get_engine(state.database_url, statement_timeout_ms=cfg.statement_timeout_ms)


def _session_factory(cfg: PipelineConfig):
    return make_session_factory(_engine(cfg))


def _fail(error: Exception) -> None:
    console.print(f"[red]Configuration error:[/red] {error}")
    raise typer.Exit(code=1)


def print_summary(summary: RunSummary, title: str) -> None:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="yellow", justify="right")

    table.add_row("Run", summary.run_id)
    table.add_row("Scanned", str(summary.scanned))
    table.add_row("Updated", str(summary.updated))
    table.add_row("Failures", str(summary.failures))
    for name, value in summary.counters.items():
        table.add_row(name.replace("_", " ").capitalize(), str(value))
    for source, hits in summary.source_hits.items():
        table.add_row(f"Hits: {source}", str(hits))
    if summary.deadline_reached:
        table.add_row("Deadline reached", f"{summary.skipped} skipped")
    console.print(table)


@app.command("init-db")
def init_db():
    "Create tables (development) and seed the jurisdictions"
    try:
        engine = _engine(_load_config())
        create_all(engine)
        with session_scope(make_session_factory(engine)) as session:
            ids = EnrichmentStore(session).ensure_jurisdictions()
    except ConfigurationError as e:
        _fail(e)
    console.print(f"Jurisdictions ready: {', '.join(sorted(ids))}")


@app.command("enrich-peptides")
def enrich_peptides(
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum peptides (default from config)"),
    slug: List[str] = typer.Option([], "--slug", help="Only these peptide slugs"),
    include_unpublished: bool = typer.Option(False, "--include-unpublished"),
):
    "Refresh profiles, safety, dosing, use cases and source claims from external sources"
    try:
        cfg = _load_config()
        factory = _session_factory(cfg)
        fetcher = HttpFetcher.from_config(cfg)
        adapters = AdapterSet.default(fetcher, ncbi_api_key=cfg.ncbi_api_key)
        with BundleCollector(adapters, max_workers=cfg.adapter_concurrency,
                             timeout=cfg.entity_timeout_seconds) as collector:
            with session_scope(factory) as session:
                orchestrator = PeptideEnrichmentOrchestrator(
                    session, collector, config=cfg, cache=LookupCache(cfg.cache_ttl_seconds),
                )
                summary = orchestrator.run(limit=limit, slugs=slug, only_published=not include_unpublished)
    except ConfigurationError as e:
        _fail(e)
    print_summary(summary, "Peptide enrichment")


@app.command("ingest-social")
def ingest_social(
    peptide_limit: Optional[int] = typer.Option(None, "--peptide-limit"),
    vendor_limit: Optional[int] = typer.Option(None, "--vendor-limit"),
    peptide_slug: List[str] = typer.Option([], "--peptide-slug"),
    vendor_slug: List[str] = typer.Option([], "--vendor-slug"),
):
    "Community claims for peptides, community reviews and ratings for vendors"
    try:
        cfg = _load_config()
        factory = _session_factory(cfg)
        adapters = default_social_adapters(HttpFetcher.from_config(cfg))
        with session_scope(factory) as session:
            summary = SocialSignalOrchestrator(session, adapters, config=cfg).run(
                peptide_limit=peptide_limit, vendor_limit=vendor_limit,
                peptide_slugs=peptide_slug, vendor_slugs=vendor_slug,
            )
    except ConfigurationError as e:
        _fail(e)
    print_summary(summary, "Social signal ingest")


@app.command("rate-vendors")
def rate_vendors(
    limit: Optional[int] = typer.Option(None, "--limit"),
    slug: List[str] = typer.Option([], "--slug"),
):
    "Re-rate vendors from trust signals, listings and fresh community reviews"
    try:
        cfg = _load_config()
        factory = _session_factory(cfg)
        adapters = default_social_adapters(HttpFetcher.from_config(cfg))
        with session_scope(factory) as session:
            summary = SocialSignalOrchestrator(session, adapters, config=cfg).run_vendors(limit=limit, slugs=slug)
    except ConfigurationError as e:
        _fail(e)
    print_summary(summary, "Vendor rating")


def _vendor_catalog(path: Path, fetch_pages: bool) -> RunSummary:
    cfg = _load_config()
    seeds = load_vendor_seeds(path)
    factory = _session_factory(cfg)
    scanner = VendorSiteScanner(HttpFetcher.from_config(cfg))
    with session_scope(factory) as session:
        return VendorCatalogOrchestrator(session, scanner, config=cfg).run(seeds, fetch_pages=fetch_pages)


@app.command("import-vendors")
def import_vendors(path: Path = typer.Argument(..., help="Vendor seed YAML")):
    "Upsert vendor seeds with their fallback peptide listings (no website fetch)"
    try:
        summary = _vendor_catalog(path, fetch_pages=False)
    except ConfigurationError as e:
        _fail(e)
    print_summary(summary, "Vendor import")


@app.command("scan-vendors")
def scan_vendors(
    path: Optional[Path] = typer.Option(None, "--seeds", help="Vendor seed YAML (default config/vendors.yaml)"),
):
    "Upsert vendor seeds and detect listed peptides on their websites"
    try:
        summary = _vendor_catalog(path or default_seed_path(), fetch_pages=True)
    except ConfigurationError as e:
        _fail(e)
    print_summary(summary, "Vendor website scan")


if __name__ == "__main__":
    app()
