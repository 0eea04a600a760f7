"""
Command-line interface for the E-Learning data layer
"""

import click
import json
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

from tqdm import tqdm

from api.context import DataContext, DataLayerConfig
from api.models import ENTITY_KINDS, IdPolicy
from search.queries import QueryService
from utils.backup_recovery import BackupManager

logger = logging.getLogger(__name__)

COLLECTIONS = click.Choice(sorted(ENTITY_KINDS))


def _parse_value(raw: str) -> Any:
    """Interpret numbers, booleans, null and JSON literals; anything else is text"""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _parse_pairs(pairs: Tuple[str, ...]) -> Dict[str, Any]:
    parsed = {}
    for pair in pairs:
        if '=' not in pair:
            raise click.BadParameter(f"expected key=value, got '{pair}'")
        key, value = pair.split('=', 1)
        parsed[key.strip()] = _parse_value(value)
    return parsed


def _parse_id(collection: str, raw: str) -> Any:
    if ENTITY_KINDS[collection].id_policy == IdPolicy.NUMERIC:
        try:
            return int(raw)
        except ValueError:
            return raw
    return raw


def _record_label(collection: str, record: Dict[str, Any]) -> str:
    id_field = ENTITY_KINDS[collection].id_field
    name = (record.get('fullName') or record.get('username') or record.get('title')
            or record.get('action') or '')
    return f"[{record.get(id_field)}] {name}".rstrip()


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--store', 'store_path', help='Path to the store database (overrides STORE_PATH)')
@click.option('--seed', 'seed_base_url', help='Seed directory or URL (overrides SEED_BASE_URL)')
@click.pass_context
def cli(ctx, debug, store_path, seed_base_url):
    """E-Learning data layer - local store, cache and seed data management"""

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = DataLayerConfig.from_environment()
    if store_path:
        config.store_path = store_path
    if seed_base_url:
        config.seed_base_url = seed_base_url

    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    ctx.obj['config'] = config


def _context(ctx) -> DataContext:
    if 'context' not in ctx.obj:
        data_context = DataContext(ctx.obj['config'])
        ctx.obj['context'] = data_context
        ctx.call_on_close(data_context.close)
    return ctx.obj['context']


def _fail(ctx, message: str, error: Exception):
    click.echo(f"❌ {message}: {error}", err=True)
    if ctx.obj.get('debug'):
        raise error
    ctx.exit(1)


@cli.command('list')
@click.argument('collection', type=COLLECTIONS)
@click.option('--refresh', is_flag=True, help='Re-fetch the seed document')
@click.option('--limit', '-l', default=20, help='Maximum records to display')
@click.option('--as-json', is_flag=True, help='Print raw JSON')
@click.pass_context
def list_records(ctx, collection, refresh, limit, as_json):
    """List the records of a collection"""

    try:
        repository = _context(ctx).repository(collection)
        records = repository.load(force_refresh=refresh)

        if repository.last_error:
            click.echo(f"⚠️  {repository.last_error}", err=True)

        if as_json:
            click.echo(json.dumps(records[:limit], ensure_ascii=False, indent=2))
            return

        click.echo(f"\n📚 {collection} ({len(records)} total)\n")
        for record in records[:limit]:
            click.echo(f"  • {_record_label(collection, record)}")
        if len(records) > limit:
            click.echo(f"  ... and {len(records) - limit} more")

    except Exception as e:
        _fail(ctx, "List failed", e)


@cli.command()
@click.argument('collection', type=COLLECTIONS)
@click.argument('query', required=False)
@click.option('--filter', '-f', 'filters', multiple=True, help='Exact-match filter key=value')
@click.option('--limit', '-l', default=20, help='Maximum results to display')
@click.pass_context
def search(ctx, collection, query, filters, limit):
    """Search a collection by free text and filters"""

    try:
        service = QueryService(_context(ctx))
        results = service.search(collection, query, _parse_pairs(filters))

        click.echo(f"\n🔍 Search results for: '{query or ''}'")
        click.echo(f"Found {len(results)} results\n")
        for i, record in enumerate(results[:limit], 1):
            click.echo(f"{i}. {_record_label(collection, record)}")

    except click.BadParameter:
        raise
    except Exception as e:
        _fail(ctx, "Search failed", e)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show statistics across all collections"""

    try:
        data_context = _context(ctx)
        report = QueryService(data_context).aggregate_statistics()

        click.echo("📊 E-Learning Statistics\n")

        users = report['users']
        click.echo("👥 Users:")
        click.echo(f"   Total: {users['total']} (active: {users['active']})")
        click.echo(f"   Students: {users['students']}, Teachers: {users['teachers']}, Admins: {users['admins']}")

        courses = report['courses']
        click.echo("\n📚 Courses:")
        click.echo(f"   Total: {courses['total']} (published: {courses['published']}, draft: {courses['draft']})")

        quizzes = report['quizzes']
        click.echo("\n📝 Quizzes:")
        click.echo(f"   Total: {quizzes['total']} (open: {quizzes['active']}, expired: {quizzes['expired']})")

        activities = report['activities']
        click.echo("\n🕒 Activity:")
        click.echo(f"   Total: {activities['total']} (today: {activities['today']})")

        store_stats = data_context.store.get_statistics()
        click.echo("\n💾 Store:")
        click.echo(f"   Keys: {store_stats['total_keys']}")
        click.echo(f"   Size: {store_stats['size_bytes'] / 1024:.1f} KB")

    except Exception as e:
        _fail(ctx, "Failed to get statistics", e)


@cli.command()
@click.argument('collection', type=COLLECTIONS)
@click.option('--field', '-F', 'fields', multiple=True, required=True, help='Field key=value')
@click.pass_context
def create(ctx, collection, fields):
    """Create a record"""

    result = _context(ctx).repository(collection).create(_parse_pairs(fields))
    if result.success:
        click.echo(f"✅ Created {_record_label(collection, result.value)}")
    else:
        click.echo(f"❌ {result.kind.value}: {result.message}", err=True)
        ctx.exit(1)


@cli.command()
@click.argument('collection', type=COLLECTIONS)
@click.argument('record_id')
@click.option('--field', '-F', 'fields', multiple=True, required=True, help='Field key=value')
@click.pass_context
def update(ctx, collection, record_id, fields):
    """Update fields of a record"""

    result = _context(ctx).repository(collection).update(
        _parse_id(collection, record_id), _parse_pairs(fields)
    )
    if result.success:
        click.echo(f"✅ Updated {_record_label(collection, result.value)}")
    else:
        click.echo(f"❌ {result.kind.value}: {result.message}", err=True)
        ctx.exit(1)


@cli.command()
@click.argument('collection', type=COLLECTIONS)
@click.argument('record_id')
@click.pass_context
def delete(ctx, collection, record_id):
    """Delete a record"""

    result = _context(ctx).repository(collection).delete(_parse_id(collection, record_id))
    if result.success:
        click.echo(f"✅ Deleted {record_id} from {collection}")
    else:
        click.echo(f"❌ {result.kind.value}: {result.message}", err=True)
        ctx.exit(1)


@cli.command('log')
@click.argument('action')
@click.argument('description')
@click.option('--actor', help='Acting user id (default: system)')
@click.pass_context
def log_activity(ctx, action, description, actor):
    """Record an activity log entry"""

    result = _context(ctx).activity_log.record(action, description, _parse_value(actor) if actor else None)
    if result.success:
        click.echo(f"✅ Logged {result.value['id']}")
    else:
        click.echo(f"❌ {result.kind.value}: {result.message}", err=True)
        ctx.exit(1)


@cli.command('export')
@click.option('--output', '-o', default='.', help='Directory for the backup file')
@click.pass_context
def export_data(ctx, output):
    """Export every collection to a backup file"""

    try:
        file_path = BackupManager(_context(ctx)).write_export(output)
        click.echo(f"✅ Backup written to {file_path}")
    except Exception as e:
        _fail(ctx, "Export failed", e)


@cli.command('import')
@click.argument('backup_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_data(ctx, backup_file):
    """Replace all collections with the content of a backup file"""

    result = BackupManager(_context(ctx)).import_data(backup_file.read_bytes())
    if result.success:
        click.echo(f"✅ Import completed (previous data saved as {result.value})")
    else:
        click.echo(f"❌ {result.kind.value}: {result.message}", err=True)
        ctx.exit(1)


@cli.command()
@click.pass_context
def backups(ctx):
    """List pre-import safety snapshots"""

    keys = BackupManager(_context(ctx)).list_backups()
    if not keys:
        click.echo("No backups found")
        return
    for key in keys:
        click.echo(f"  • {key}")


@cli.command()
@click.argument('backup_key')
@click.pass_context
def restore(ctx, backup_key):
    """Restore collections from a safety snapshot"""

    result = BackupManager(_context(ctx)).restore_backup(backup_key)
    if result.success:
        click.echo(f"✅ Restored from {backup_key}")
    else:
        click.echo(f"❌ {result.kind.value}: {result.message}", err=True)
        ctx.exit(1)


@cli.command()
@click.pass_context
def refresh(ctx):
    """Re-seed every collection from the seed documents"""

    data_context = _context(ctx)
    failures = 0

    with tqdm(total=len(data_context.repositories), desc="Refreshing collections", unit="collection") as pbar:
        for name, repository in data_context.repositories.items():
            records = repository.load(force_refresh=True)
            if repository.last_error:
                failures += 1
                tqdm.write(f"❌ {name}: {repository.last_error}")
            else:
                tqdm.write(f"✅ {name}: {len(records)} records")
            pbar.update(1)

    if failures:
        ctx.exit(1)


@cli.command('cache-info')
@click.pass_context
def cache_info(ctx):
    """Show freshness cache content"""

    info = _context(ctx).cache.info()
    click.echo(f"💾 Cache entries: {info['count']} ({info['totalSize']} bytes)")
    for entry in info['entries']:
        click.echo(f"   • {entry['key']}: {entry['size']} bytes, {entry['age'] / 1000:.1f}s old")


@cli.command()
@click.option('--set', 'assignments', multiple=True, help='Setting key=value')
@click.pass_context
def settings(ctx, assignments):
    """Show or change application settings"""

    data_context = _context(ctx)
    if assignments:
        result = data_context.update_settings(_parse_pairs(assignments))
        if not result.success:
            click.echo(f"❌ {result.kind.value}: {result.message}", err=True)
            ctx.exit(1)

    click.echo(json.dumps(data_context.get_settings(), ensure_ascii=False, indent=2))


@cli.command()
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def reset(ctx, yes):
    """Clear the store and recreate the default keys"""

    if not yes:
        click.confirm("Delete all stored data?", abort=True)

    if _context(ctx).clear_storage():
        click.echo("✅ Storage cleared")
    else:
        click.echo("❌ Failed to clear storage", err=True)
        ctx.exit(1)


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
