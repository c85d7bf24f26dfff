"""
Main CLI interface for Playlist-Packager

The CLI is built using Click and provides command groups for:
- Videos (list, ingest, edit, delete, retry-delete, orphans)
- Playlists (list, create, add, remove, move, reorder, rename, delete, unassigned)
- Packages (publish, list, search, show, import, download, delete, backfill)
- Configuration (show, validate)

Every command builds its components through ``create_services`` and runs
its store I/O on a fresh event loop.
"""

import asyncio
import functools
import sys
from contextlib import asynccontextmanager
from typing import List

import click

from . import __version__
from .config.settings import get_settings, reload_settings
from .core.exceptions import IntegrityError, NotFoundError, PackagerError
from .packages import BuildProgress
from .services import Services, create_services
from .utils.helpers import format_duration, format_file_size, format_timestamp
from .utils.logger import configure_from_settings, create_operation_logger, get_current_log_file, get_logger


logger = get_logger(__name__)


def handle_error(func):
    """
    Decorator to handle CLI errors gracefully

    Packager errors are shown as one red line plus their details; anything
    else is logged and reported. Both exit with status 1.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except IntegrityError as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e.message}", fg='red'), err=True)
            for error in e.errors:
                click.echo(click.style(f"   - {error}", fg='red'), err=True)
            sys.exit(1)
        except PackagerError as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
        except Exception as e:
            logger.error(f"Command failed: {e}", exc_info=True)
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def run_async(func):
    """Run a coroutine command to completion"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))
    return wrapper


@asynccontextmanager
async def open_services(refresh: bool = True):
    """Services for one command, with the catalog loaded"""
    services = create_services(get_settings())
    try:
        if refresh:
            await services.catalog.refresh()
        yield services
    finally:
        await services.close()


def resolve_video(services: Services, ref: str):
    """Find a video by id, filename or title"""
    video = services.catalog.get(ref)
    if video is not None:
        return video
    for candidate in services.catalog.videos:
        if ref in (candidate.filename, candidate.title, candidate.storage_ref.key):
            return candidate
    raise NotFoundError(f"No video matches '{ref}'", details={'video': ref})


def resolve_playlist(services: Services, ref: str):
    """Find a playlist by id or exact name"""
    playlist = services.playlists.get(ref)
    if playlist is not None:
        return playlist
    matches = [p for p in services.playlists.list() if p.name == ref]
    if len(matches) > 1:
        raise click.BadParameter(f"'{ref}' matches {len(matches)} playlists, use the id")
    if not matches:
        raise NotFoundError(f"No playlist matches '{ref}'", details={'playlist': ref})
    return matches[0]


def echo_result(ok: bool, success: str, failure: str) -> None:
    if ok:
        click.echo(click.style(success, fg='green'))
    else:
        click.echo(click.style(failure, fg='red'), err=True)
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    Playlist-Packager - manage videos and playlists, build device packages
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"Playlist-Packager v{__version__}")
        return

    settings = reload_settings(config) if config else get_settings()
    if verbose:
        ctx.obj['verbose'] = True
        settings.logging.level = "DEBUG"
    configure_from_settings(settings)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ==============================================================================
# Videos
# ==============================================================================

@cli.group()
def videos():
    """Video catalog"""


@videos.command('list')
@click.option('--query', '-q', default="", help='Filter by title, filename or tag')
@click.option('--tag', '-t', multiple=True, help='Only videos carrying every given tag')
@handle_error
@run_async
async def videos_list(query, tag):
    """List catalog videos"""
    async with open_services() as services:
        found = services.catalog.search(query, tag)
        if not found:
            click.echo("No videos found")
            return

        click.echo(f"Found {len(found)} videos:\n")
        for video in found:
            click.echo(f" {video.title}")
            click.echo(f"   id: {video.id}  file: {video.filename}")
            click.echo(
                f"   {format_duration(video.duration_seconds)}  "
                f"{format_file_size(video.file_size_bytes)}  "
                f"{video.resolution or '-'}"
            )
            if video.tags:
                click.echo(f"   tags: {', '.join(sorted(video.tags))}")


@videos.command('ingest')
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True))
@handle_error
@run_async
async def videos_ingest(paths):
    """Upload local video files, one at a time"""
    async with open_services() as services:
        operation = create_operation_logger(__name__, "Uploading videos")
        operation.start(f"Uploading {len(paths)} file(s)")
        results = await services.ingestor.ingest(
            paths,
            progress=lambda index, total, name: operation.progress(name, index, total),
        )
        operation.complete()

        failed = [r for r in results if not r.uploaded]
        for result in results:
            if result.uploaded:
                thumb = "" if result.thumbnail_uploaded else " (no thumbnail)"
                click.echo(f"   {result.path.name} -> {result.key}{thumb}")
        for result in failed:
            click.echo(click.style(f"   {result.path.name}: {result.error}", fg='red'), err=True)
        if failed:
            sys.exit(1)


@videos.command('edit')
@click.argument('video')
@click.option('--title', help='New title')
@click.option('--tag', '-t', 'tags', multiple=True, help='Replace tags (repeatable)')
@click.option('--clear-tags', is_flag=True, help='Remove all tags')
@click.option('--duration', type=float, help='Duration in seconds')
@click.option('--resolution', help='Resolution, e.g. 1920x1080')
@handle_error
@run_async
async def videos_edit(video, title, tags, clear_tags, duration, resolution):
    """Edit a video's title, tags or technical metadata"""
    fields = {}
    if title is not None:
        fields['title'] = title
    if tags or clear_tags:
        fields['tags'] = list(tags)
    if duration is not None:
        fields['duration_seconds'] = duration
    if resolution is not None:
        fields['resolution'] = resolution
    if not fields:
        raise click.UsageError("Nothing to change")

    async with open_services() as services:
        target = resolve_video(services, video)
        updated = services.catalog.apply_override(target.id, fields)
        click.echo(click.style(f"Updated {updated.title} ({updated.id})", fg='green'))


@videos.command('delete')
@click.argument('video')
@click.option('--force', is_flag=True, help='Remove locally even if the store delete fails')
@handle_error
@run_async
async def videos_delete(video, force):
    """Delete a video from the store and every playlist"""
    async with open_services() as services:
        target = resolve_video(services, video)
        result = await services.catalog.delete(target.id, force=force)

        if result.success:
            click.echo(click.style(f"Deleted {target.filename}", fg='green'))
        elif result.orphaned:
            click.echo(click.style(
                f"Removed {target.filename} locally, but the store delete failed: {result.error}", fg='yellow'))
            click.echo("   Listed under 'videos orphans'; use 'videos retry-delete' to try again")
        else:
            click.echo(click.style(f"Delete failed: {result.error}", fg='red'), err=True)
            click.echo("   The video is unchanged; use --force to remove it locally anyway", err=True)
            sys.exit(1)


@videos.command('retry-delete')
@click.argument('video_id')
@handle_error
@run_async
async def videos_retry_delete(video_id):
    """Retry the store delete of an orphaned (or live) video"""
    async with open_services() as services:
        result = await services.catalog.retry_delete(video_id)
        echo_result(
            result.success,
            f"Deleted {video_id} after {result.attempts} attempt(s)",
            f"Still failing after {result.attempts} attempt(s): {result.error}",
        )


@videos.command('orphans')
@click.option('--discard', 'discard_id', help='Forget an orphan after manual cleanup')
@handle_error
@run_async
async def videos_orphans(discard_id):
    """List videos whose store delete failed"""
    async with open_services(refresh=False) as services:
        if discard_id:
            echo_result(
                services.catalog.discard_orphan(discard_id),
                f"Discarded orphan {discard_id}",
                f"No orphan with id {discard_id}",
            )
            return

        orphans = services.catalog.list_orphans()
        if not orphans:
            click.echo("No orphaned assets")
            return
        click.echo(f"{len(orphans)} orphaned assets:\n")
        for orphan in orphans:
            click.echo(f" {orphan.filename} ({orphan.video_id})")
            click.echo(f"   key: {orphan.key}")
            click.echo(f"   since: {format_timestamp(orphan.orphaned_at)}  reason: {orphan.reason}")


# ==============================================================================
# Playlists
# ==============================================================================

@cli.group()
def playlists():
    """Playlists over the catalog"""


@playlists.command('list')
@click.option('--videos', 'show_videos', is_flag=True, help='Show each playlist\'s videos')
@handle_error
@run_async
async def playlists_list(show_videos):
    """List playlists"""
    async with open_services() as services:
        items = services.playlists.list()
        if not items:
            click.echo("No playlists")
            return

        for playlist in items:
            meta = playlist.metadata
            click.echo(f" {playlist.name}")
            click.echo(f"   id: {playlist.id}")
            click.echo(
                f"   {meta.video_count} videos, {format_duration(meta.total_duration_seconds)}, "
                f"{format_file_size(meta.total_size_bytes)}"
            )
            if show_videos:
                for index, video_id in enumerate(playlist.video_order):
                    video = services.catalog.get(video_id)
                    click.echo(f"   {index:>3}. {video.title if video else video_id}")


@playlists.command('create')
@click.argument('name')
@click.option('--description', '-d', default="", help='Playlist description')
@handle_error
@run_async
async def playlists_create(name, description):
    """Create an empty playlist"""
    async with open_services(refresh=False) as services:
        playlist = services.playlists.create(name, description)
        click.echo(click.style(f"Created '{playlist.name}' ({playlist.id})", fg='green'))


@playlists.command('add')
@click.argument('playlist')
@click.argument('video_refs', nargs=-1, required=True)
@click.option('--at', 'at_index', type=int, help='Insert position')
@handle_error
@run_async
async def playlists_add(playlist, video_refs, at_index):
    """Add videos to a playlist"""
    async with open_services() as services:
        target = resolve_playlist(services, playlist)
        failed = []
        for offset, ref in enumerate(video_refs):
            video = resolve_video(services, ref)
            index = at_index + offset if at_index is not None else None
            if not services.playlists.add_video(target.id, video.id, index):
                failed.append(ref)
        echo_result(
            not failed,
            f"Added {len(video_refs)} video(s) to '{target.name}'",
            f"Could not add (already present?): {', '.join(failed)}",
        )


@playlists.command('remove')
@click.argument('playlist')
@click.argument('video')
@handle_error
@run_async
async def playlists_remove(playlist, video):
    """Remove a video from a playlist"""
    async with open_services() as services:
        target = resolve_playlist(services, playlist)
        item = resolve_video(services, video)
        echo_result(
            services.playlists.remove_video(target.id, item.id),
            f"Removed {item.filename} from '{target.name}'",
            f"{item.filename} is not in '{target.name}'",
        )


@playlists.command('move')
@click.argument('video')
@click.option('--to', 'to_playlist', required=True, help='Target playlist')
@click.option('--from', 'from_playlist', help='Source playlist (omit to add)')
@click.option('--at', 'at_index', type=int, help='Insert position in the target')
@handle_error
@run_async
async def playlists_move(video, to_playlist, from_playlist, at_index):
    """Move a video between playlists"""
    async with open_services() as services:
        item = resolve_video(services, video)
        target = resolve_playlist(services, to_playlist)
        source = resolve_playlist(services, from_playlist) if from_playlist else None
        echo_result(
            services.playlists.move_video(source.id if source else None, target.id, item.id, at_index),
            f"Moved {item.filename} to '{target.name}'",
            f"Could not move {item.filename} to '{target.name}'",
        )


@playlists.command('reorder')
@click.argument('playlist')
@click.argument('video')
@click.argument('index', type=int)
@handle_error
@run_async
async def playlists_reorder(playlist, video, index):
    """Move a video to a new position within its playlist"""
    async with open_services() as services:
        target = resolve_playlist(services, playlist)
        item = resolve_video(services, video)
        echo_result(
            services.playlists.reorder(target.id, item.id, index),
            f"Moved {item.filename} to position {index}",
            f"{item.filename} is not in '{target.name}'",
        )


@playlists.command('rename')
@click.argument('playlist')
@click.argument('name')
@click.option('--description', '-d', help='New description')
@handle_error
@run_async
async def playlists_rename(playlist, name, description):
    """Rename a playlist"""
    async with open_services(refresh=False) as services:
        target = resolve_playlist(services, playlist)
        echo_result(
            services.playlists.rename(target.id, name, description),
            f"Renamed '{target.name}' to '{name}'",
            "Playlist name cannot be empty",
        )


@playlists.command('delete')
@click.argument('playlist')
@click.confirmation_option(prompt='Delete this playlist?')
@handle_error
@run_async
async def playlists_delete(playlist):
    """Delete a playlist (videos are kept)"""
    async with open_services(refresh=False) as services:
        target = resolve_playlist(services, playlist)
        echo_result(
            services.playlists.delete(target.id),
            f"Deleted '{target.name}'",
            f"Could not delete '{target.name}'",
        )


@playlists.command('unassigned')
@handle_error
@run_async
async def playlists_unassigned():
    """Videos not in any playlist"""
    async with open_services() as services:
        loose = services.playlists.unassigned_videos()
        if not loose:
            click.echo("Every video is in a playlist")
            return
        click.echo(f"{len(loose)} videos are not in any playlist:\n")
        for video in loose:
            click.echo(f"   {video.title} ({video.id})")


# ==============================================================================
# Packages
# ==============================================================================

@cli.group()
def packages():
    """Content packages for playback devices"""


def _selected_playlists(services: Services, refs: List[str]):
    if not refs:
        return services.playlists.list()
    return [resolve_playlist(services, ref) for ref in refs]


@packages.command('publish')
@click.argument('name')
@click.option('--playlist', '-p', 'playlist_refs', multiple=True, help='Playlist to include (default: all)')
@click.option('--all-videos', is_flag=True, help='Package every catalog video, not only those in the playlists')
@click.option('--dry-run', is_flag=True, help='Build and validate without uploading')
@handle_error
@run_async
async def packages_publish(name, playlist_refs, all_videos, dry_run):
    """Build a package and upload it with its sidecar"""
    async with open_services() as services:
        selected = _selected_playlists(services, list(playlist_refs))
        if all_videos:
            chosen = services.catalog.videos
        else:
            wanted = set()
            for playlist in selected:
                wanted.update(playlist.video_order)
            chosen = [v for v in services.catalog.videos if v.id in wanted]

        click.echo(
            f"Package '{name}': {len(selected)} playlists, {len(chosen)} videos, "
            f"about {format_file_size(services.builder.estimate_package_size(chosen))}"
        )

        if dry_run:
            package = services.builder.build_package(name, chosen, selected)
            errors = services.builder.validate_package(package)
            for playlist_name, dropped in package.dropped_ids.items():
                click.echo(click.style(f"   '{playlist_name}': {len(dropped)} missing videos dropped", fg='yellow'))
            echo_result(
                not errors,
                f"Package is valid ({len(package.playlist_files)} playlist files)",
                "Package is invalid:\n" + "\n".join(f"   - {e}" for e in errors),
            )
            return

        operation = create_operation_logger(__name__, "Building package")
        operation.start()

        def on_progress(update: BuildProgress) -> None:
            operation.progress(update.current_file, update.completed, update.total)

        try:
            result = await services.builder.publish(name, chosen, selected, progress=on_progress)
        except PackagerError as e:
            operation.error(str(e))
            raise
        operation.complete(f"Uploaded {result.archive_key} ({format_file_size(result.size_bytes)})")

        if result.public_url:
            click.echo(f"   URL: {result.public_url}")
        if not result.sidecar_saved:
            click.echo(click.style(
                f"   Sidecar not saved ({result.sidecar_error}); it will be regenerated on the next listing",
                fg='yellow'))


@packages.command('list')
@handle_error
@run_async
async def packages_list():
    """List published packages, newest first"""
    async with open_services(refresh=False) as services:
        summaries = await services.loader.list_packages()
        if not summaries:
            click.echo("No packages found")
            return

        click.echo(f"Found {len(summaries)} packages:\n")
        for summary in summaries:
            click.echo(f" {summary.package_name}")
            click.echo(f"   {summary.archive_key}")
            click.echo(f"   {format_file_size(summary.size)}  {format_timestamp(summary.last_modified)}")
            if summary.metadata is not None:
                meta = summary.metadata
                click.echo(f"   {meta.playlist_count} playlists, {meta.video_count} videos: {', '.join(meta.playlist_names)}")
            else:
                click.echo(click.style("   metadata unavailable", fg='yellow'))


@packages.command('search')
@click.argument('query')
@handle_error
@run_async
async def packages_search(query):
    """Fuzzy search package and playlist names"""
    async with open_services(refresh=False) as services:
        hits = await services.loader.search_packages(query)
        if not hits:
            click.echo(f"No packages match '{query}'")
            return
        for summary, score in hits:
            click.echo(f" {summary.package_name} ({score:.0f}%)")
            click.echo(f"   {summary.archive_key}")


@packages.command('show')
@click.argument('archive_key')
@handle_error
@run_async
async def packages_show(archive_key):
    """Show a package's playlists and which videos are missing locally"""
    async with open_services() as services:
        structure = await services.loader.load_structure(archive_key)
        available = {v.filename for v in services.catalog.videos}

        click.echo(f"{structure.package_name}: {len(structure.playlists)} playlists, "
                   f"{len(structure.required_filenames)} videos\n")
        for playlist in structure.playlists:
            click.echo(f" {playlist.name} ({playlist.mood}, {len(playlist.videos)} videos)")
            for entry in playlist.videos:
                mark = "" if entry.filename in available else click.style("  [missing]", fg='yellow')
                click.echo(f"   {entry.duration_formatted}  {entry.filename}{mark}")


@packages.command('import')
@click.argument('archive_key')
@handle_error
@run_async
async def packages_import(archive_key):
    """Import a package's playlists against the current catalog"""
    async with open_services() as services:
        structure = await services.loader.load_structure(archive_key)
        result = services.loader.import_as_playlists(structure, services.catalog.videos)

        for playlist in result.playlists:
            adopted = services.playlists.adopt(playlist)
            click.echo(click.style(f"Imported '{adopted.name}' ({len(adopted.video_order)} videos)", fg='green'))
        for name in result.skipped_playlists:
            click.echo(click.style(f"Skipped '{name}': no videos available", fg='yellow'))
        if result.missing_videos:
            click.echo(click.style(f"{len(result.missing_videos)} videos are not in the catalog:", fg='yellow'))
            for filename in result.missing_videos:
                click.echo(f"   {filename}")
        for error in result.errors:
            click.echo(click.style(error, fg='red'), err=True)
        if not result.success:
            sys.exit(1)


@packages.command('download')
@click.argument('archive_key')
@click.option('--output', '-o', type=click.Path(), default=".", help='Directory or file to write to')
@handle_error
@run_async
async def packages_download(archive_key, output):
    """Download an archive"""
    async with open_services(refresh=False) as services:
        path = await services.loader.download(archive_key, output)
        click.echo(click.style(f"Saved {path}", fg='green'))


@packages.command('delete')
@click.argument('archive_key')
@click.confirmation_option(prompt='Delete this package?')
@handle_error
@run_async
async def packages_delete(archive_key):
    """Delete an archive and its sidecar"""
    async with open_services(refresh=False) as services:
        result = await services.loader.delete(archive_key)
        if not result.archive_deleted:
            click.echo(click.style(f"Delete failed: {result.error}", fg='red'), err=True)
            sys.exit(1)
        click.echo(click.style(f"Deleted {archive_key}", fg='green'))
        if not result.sidecar_deleted:
            click.echo(click.style("   Sidecar could not be deleted", fg='yellow'))


@packages.command('backfill')
@handle_error
@run_async
async def packages_backfill():
    """Generate sidecars for archives that lack one"""
    async with open_services(refresh=False) as services:
        operation = create_operation_logger(__name__, "Generating sidecars")
        operation.start()
        report = await services.loader.backfill_sidecars(
            progress=lambda index, total, key: operation.progress(key, index, total),
        )
        operation.complete(
            f"{len(report.generated)} generated, {len(report.skipped)} already present, "
            f"{len(report.failed)} failed"
        )
        for key, error in report.failed.items():
            click.echo(click.style(f"   {key}: {error}", fg='red'), err=True)


# ==============================================================================
# Configuration
# ==============================================================================

@cli.group()
def config():
    """Configuration management"""


@config.command()
@handle_error
def show():
    """Show current configuration"""
    settings = get_settings()
    source = settings.loaded_from or "defaults"
    click.echo(f"Current Configuration ({source}):\n")
    for section, values in settings.to_dict().items():
        click.echo(f"{section.capitalize()}:")
        for key, value in values.items():
            click.echo(f"   {key}: {value}")
        click.echo()

    log_file = get_current_log_file()
    click.echo(f"Log file: {log_file if log_file else 'disabled'}")


@config.command()
@handle_error
def validate():
    """Check the configuration for problems"""
    problems = get_settings().validate()
    if not problems:
        click.echo(click.style("Configuration is valid", fg='green'))
        return
    click.echo(f"Found {len(problems)} issues:")
    for problem in problems:
        click.echo(f"   • {problem}")
    sys.exit(1)


if __name__ == '__main__':
    cli()
