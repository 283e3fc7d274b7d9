import json
import sys

import click

from common.logging import LoggingManager
from goodfirst.app import Application
from goodfirst.config import get_config
from goodfirst.github.client import APILimitError, RepositoryNotFound
from goodfirst.ratelimit import RateLimited

logger = LoggingManager.get_logger('app.cli')

# Exit code when GitHub keeps rate limiting us
APILIMIT_EXIT_CODE = 2


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(message: str, code: int = 1) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


@click.group()
@click.option('--log-file/--no-log-file', default=True, help='Also write logs to a timestamped file under LOG_DIR.')
@click.pass_context
def cli(ctx, log_file: bool):
    """Good First Finder: beginner-friendly GitHub repositories ranked by health."""
    config = get_config()
    LoggingManager.from_config(config, log_to_file=log_file)
    ctx.obj = Application(config)


@cli.command('init-db')
@click.pass_obj
def init_db(app: Application):
    """Create the database tables."""
    # Application() already ran create_all on the configured database.
    click.echo(f"Database ready at {app.config.database_url}")


@cli.command('worker')
@click.pass_obj
def worker(app: Application):
    """Run the job processor and the cleanup sweeper until interrupted."""
    click.echo("Starting worker (Ctrl+C to stop)")
    app.run_forever()
    click.echo("Worker stopped.")


@cli.command('process-jobs')
@click.pass_obj
def process_jobs(app: Application):
    """Drain the job queue once and exit."""
    stats = app.processor.run_once()
    click.echo(f"Processed {stats['processed']} jobs: {stats['completed']} completed, "
               f"{stats['requeued']} requeued, {stats['failed']} failed")


@cli.command('search')
@click.argument('query')
@click.option('--page', type=int, default=1, help='Result page, starting at 1')
@click.option('--per-page', type=int, default=10, help='Results per page (max 30)')
@click.option('--sort', type=click.Choice(['updated', 'stars', 'forks', 'best-match']), default='updated')
@click.option('--order', type=click.Choice(['asc', 'desc']), default='desc')
@click.pass_obj
def search(app: Application, query: str, page: int, per_page: int, sort: str, order: str):
    """Search GitHub for beginner-friendly repositories."""
    try:
        result = app.service.search(query, page=page, per_page=per_page, sort=sort, order=order, caller="cli")
    except RateLimited as e:
        _fail(f"{e.message} Retry after {e.retry_after_seconds}s.")
    except APILimitError as e:
        _fail(f"GitHub API rate limit hit. {e.message}. Try again later.", APILIMIT_EXIT_CODE)

    click.echo(f"{result.total_count} repositories found")
    for item in result.items:
        click.echo(f"{item.health_score:>3}  {item.full_name}  ★{item.stars}  {item.description or ''}")


@cli.command('view')
@click.argument('full_name')
@click.pass_obj
def view(app: Application, full_name: str):
    """Show one repository (owner/name), caching it and queueing a refresh if stale."""
    try:
        data = app.service.view(full_name)
    except RepositoryNotFound:
        _fail(f"Repository {full_name} not found on GitHub")
    except APILimitError as e:
        _fail(f"GitHub API rate limit hit. {e.message}. Try again later.", APILIMIT_EXIT_CODE)
    _echo_json(data)


@cli.command('list')
@click.option('--page', type=int, default=1)
@click.option('--per-page', type=int, default=12, help='Results per page (max 50)')
@click.pass_obj
def list_repositories(app: Application, page: int, per_page: int):
    """List cached repositories by health score."""
    _echo_json(app.service.list(page=page, per_page=per_page))


@cli.command('refresh')
@click.argument('repo_id', type=int)
@click.pass_obj
def refresh(app: Application, repo_id: int):
    """Queue a refresh of a cached repository."""
    try:
        job, created = app.service.request_refresh(repo_id)
    except RepositoryNotFound:
        _fail(f"Repository {repo_id} not found")
    click.echo(f"Refresh queued (job {job.id})" if created else f"Refresh already queued (job {job.id})")


@cli.command('health')
@click.argument('repo_id', type=int)
@click.pass_obj
def health(app: Application, repo_id: int):
    """Show the health score of a cached repository."""
    try:
        _echo_json(app.service.health(repo_id))
    except RepositoryNotFound:
        _fail(f"Repository {repo_id} not found")


@cli.command('cleanup')
@click.pass_obj
def cleanup(app: Application):
    """Delete cached repositories not fetched within the TTL."""
    result = app.service.cleanup()
    click.echo(f"Cleanup completed: {result.deleted} repositories deleted")


@cli.command('jobs')
@click.option('--status', type=click.Choice(['queued', 'processing', 'completed', 'failed']), default=None)
@click.option('--limit', type=int, default=20)
@click.pass_obj
def jobs(app: Application, status, limit: int):
    """Show queue counts and recent jobs."""
    _echo_json({
        "counts": app.queue.counts(),
        "jobs": [job.to_dict() for job in app.queue.list(status=status, limit=limit)],
    })


if __name__ == '__main__':
    cli()
