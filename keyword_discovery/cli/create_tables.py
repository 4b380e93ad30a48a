# keyword_discovery/cli/create_tables.py
import asyncio
import click

from keyword_discovery.core.config import get_settings
from keyword_discovery.database import build_engine, build_session_factory, create_all_tables
from keyword_discovery.services.keyword_job_store import KeywordJobStore


@click.group()
def cli():
    """Keyword discovery maintenance commands"""


@cli.command("create-tables")
def create_tables():
    """Create all database tables directly using SQLAlchemy"""
    settings = get_settings()

    async def _create_tables():
        engine = build_engine(settings.async_database_url, echo=True)
        await create_all_tables(engine)
        await engine.dispose()
        click.echo("All tables created successfully!")

    asyncio.run(_create_tables())


@cli.command("list-jobs")
@click.option("--session-id", default=None, help="Only jobs with this session tag")
def list_jobs(session_id):
    """Print keyword jobs with their progress"""
    settings = get_settings()

    async def _list_jobs():
        engine = build_engine(settings.async_database_url)
        store = KeywordJobStore(build_session_factory(engine))
        rows = await store.list_jobs(session_id)
        await engine.dispose()
        if not rows:
            click.echo("No jobs found")
            return
        for job, result_count in rows:
            click.echo(
                f"{job.id}  {job.status:<9}  cycle {job.current_cycle}/{job.total_cycles}  "
                f"keywords={job.total_keywords} results={result_count}  {job.name}"
            )

    asyncio.run(_list_jobs())


if __name__ == "__main__":
    cli()
