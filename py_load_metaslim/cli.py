import asyncio
import logging
from pathlib import Path
from typing import List

import httpx
import typer
import yaml

from py_load_metaslim.catalog import (
    PopulationFilter,
    StudySortKey,
    filter_by_population,
    search_studies,
    sort_studies,
    summary_stats,
)
from py_load_metaslim.config import Settings, get_settings
from py_load_metaslim.editing import add_manual_study, edit_study
from py_load_metaslim.errors import MetaslimError
from py_load_metaslim.extractor.gemini import GeminiExtractionClient
from py_load_metaslim.extractor.pdf import PdfTextExtractor
from py_load_metaslim.loaders.postgres import PostgresStore
from py_load_metaslim.models.study import StudyRecord
from py_load_metaslim.pipeline.batch import BatchIngestor, FileProgress, FileStatus
from py_load_metaslim.proxy import GeminiProxy

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Curate clinical-trial cohorts of weight-loss drugs.")


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _get_store(settings: Settings) -> PostgresStore:
    return PostgresStore(
        dsn=settings.db_connection_string,
        schema=settings.db_schema,
        table=settings.db_table,
    )


def _format_study(study: StudyRecord) -> str:
    population = "T2D" if study.has_t2d else "non-T2D"
    if study.is_chinese_cohort:
        population += ", Chinese"
    doses = "; ".join(
        f"{d.dose}: -{d.weight_loss_percent}%" for d in study.doses
    )
    return (
        f"{study.study_id}  {study.drug_name} [{study.drug_class}] "
        f"{study.trial_name} {study.phase or '-'} {study.duration_weeks}w "
        f"({population})  {doses}"
    )


def _read_form(path: Path) -> dict:
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path} does not contain a study mapping.")
    return data


@app.callback()
def main(
    ctx: typer.Context,
    config_file: str = typer.Option("config.yaml", "--config", help="Path to YAML config file."),
    db_dsn: str = typer.Option(None, "--db-dsn", help="Override database DSN."),
):
    """Configure settings shared by all commands."""
    ctx.obj = get_settings(config_file, db_dsn=db_dsn)


async def arun_ingest(settings: Settings, files: List[Path]) -> List[FileProgress]:
    """Extracts, filters and stores the cohorts found in `files`."""
    store = _get_store(settings)
    async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
        proxy = None
        if settings.gemini_api_key:
            proxy = GeminiProxy(
                client=client,
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                base_url=settings.gemini_base_url,
                max_text_chars=settings.max_text_chars,
            )
        ai_client = GeminiExtractionClient(client=client, proxy_url=settings.proxy_url, proxy=proxy)
        ingestor = BatchIngestor(
            store=store,
            ai_client=ai_client,
            pdf_extractor=PdfTextExtractor(max_pages=settings.max_pdf_pages),
        )
        return await ingestor.run(files)


@app.command()
def ingest(
    ctx: typer.Context,
    files: List[Path] = typer.Argument(..., help="PDF documents or images to extract."),
):
    """Extract study cohorts from documents and store the new ones."""
    results = asyncio.run(arun_ingest(_settings(ctx), files))
    failed = 0
    for item in results:
        marker = "OK " if item.status is FileStatus.SUCCESS else "ERR"
        typer.echo(f"{marker} {item.file_name}: {item.message}")
        if item.status is FileStatus.ERROR:
            failed += 1
    if failed:
        raise typer.Exit(code=1)


@app.command("init-db")
def init_db(ctx: typer.Context):
    """Create the studies table if it does not exist."""
    _get_store(_settings(ctx)).prepare_schema()
    typer.echo("Database ready.")


@app.command("list")
def list_command(
    ctx: typer.Context,
    population: PopulationFilter = typer.Option(PopulationFilter.ALL, help="Population filter."),
    search: str = typer.Option(None, help="Text to search for."),
    sort: StudySortKey = typer.Option(StudySortKey.CREATED_AT, help="Sort key."),
    ascending: bool = typer.Option(False, help="Sort ascending instead of descending."),
):
    """List stored studies."""
    studies = _get_store(_settings(ctx)).list_studies()
    studies = filter_by_population(studies, population)
    studies = search_studies(studies, search)
    studies = sort_studies(studies, sort, descending=not ascending)
    for study in studies:
        typer.echo(_format_study(study))
    typer.echo(f"{len(studies)} study(ies).")


@app.command()
def stats(ctx: typer.Context):
    """Show summary statistics."""
    summary = summary_stats(_get_store(_settings(ctx)).list_studies())
    typer.echo(f"Studies: {summary['total_studies']}")
    typer.echo(f"Drug classes: {summary['drug_classes']}")
    typer.echo(f"Best weight loss: {summary['max_weight_loss']}%")


@app.command()
def add(
    ctx: typer.Context,
    form_file: Path = typer.Argument(..., help="YAML or JSON file with the study fields."),
):
    """Add a study entered by hand."""
    try:
        record = add_manual_study(_get_store(_settings(ctx)), _read_form(form_file))
    except MetaslimError as e:
        typer.echo(f"Add failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Added {record.study_id}.")


@app.command()
def edit(
    ctx: typer.Context,
    study_id: str = typer.Argument(...),
    form_file: Path = typer.Argument(..., help="YAML or JSON file with the study fields."),
):
    """Replace the fields of a stored study."""
    try:
        edit_study(_get_store(_settings(ctx)), study_id, _read_form(form_file))
    except MetaslimError as e:
        typer.echo(f"Edit failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Updated {study_id}.")


@app.command()
def delete(ctx: typer.Context, study_id: str = typer.Argument(...)):
    """Delete one study."""
    _get_store(_settings(ctx)).delete(study_id)
    typer.echo(f"Deleted {study_id}.")


@app.command("delete-selected")
def delete_selected(ctx: typer.Context, study_ids: List[str] = typer.Argument(...)):
    """Delete several studies at once."""
    _get_store(_settings(ctx)).delete_many(study_ids)
    typer.echo(f"Deleted {len(study_ids)} study(ies).")


@app.command()
def clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Confirm deletion of every study."),
):
    """Delete every stored study. This cannot be undone."""
    store = _get_store(_settings(ctx))
    if not yes:
        count = len(store.list_studies())
        typer.confirm(f"Delete all {count} studies? This cannot be undone.", abort=True)
    store.delete_all()
    typer.echo("All studies deleted.")


if __name__ == "__main__":
    app()
