"""CLI commands for podcast management.

Provides commands for:
- Importing and exporting OPML files
- Adding podcasts from feed URLs
- Syncing feeds
- Listing podcasts and episodes
- Marking episodes played or hidden
- Removing podcasts
"""

import argparse
import logging
import sys

from ..config import Config
from ..db.factory import repository_from_config
from ..errors import PodsyncError
from ..podcast.feed_client import FeedClient
from ..podcast.feed_sync import FeedSyncService, SyncSummary
from ..workflow.config import SyncConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _create_sync_service(repository, config: Config) -> FeedSyncService:
    sync_config = SyncConfig.from_env()
    feed_client = FeedClient(
        max_retries=sync_config.max_retries,
        connect_timeout=sync_config.connect_timeout_seconds,
        read_timeout=sync_config.read_timeout_seconds,
        user_agent=config.FEED_USER_AGENT,
    )
    return FeedSyncService(
        repository=repository,
        feed_client=feed_client,
        sync_config=sync_config,
    )


def _print_summary(summary: SyncSummary) -> None:
    """Print "N succeeded, M failed" followed by each failing feed."""
    print(f"\nSync complete: {summary.succeeded_count} succeeded, {len(summary.failed_feeds)} failed")
    print(f"  New episodes: {summary.added_count}")
    print(f"  Updated episodes: {summary.updated_count}")
    if summary.skipped:
        print(f"  Skipped: {summary.skipped}")

    if summary.failed_feeds:
        print("\nFailed feeds:")
        for outcome in summary.failed_feeds:
            print(f"  - {outcome.feed.title or outcome.feed.feed_url}: {outcome.error}")


def import_opml(args, config: Config):
    """
    Subscribe to every feed in an OPML file that is not stored yet.

    With `args.dry_run` the feeds that would be imported are listed and nothing is fetched.
    Exits with status 1 if any feed failed.
    """
    logger.info(f"Importing OPML file: {args.file}")

    repository = repository_from_config(config)
    try:
        sync_service = _create_sync_service(repository, config)

        if args.dry_run:
            feeds, skipped = sync_service.feeds_to_import(args.file)
            print(f"\n[DRY RUN] Would import {len(feeds)} feeds ({skipped} skipped):")
            for feed in feeds:
                print(f"  - {feed.title or 'Unknown'}: {feed.feed_url}")
            return

        summary = sync_service.import_opml(args.file)
        _print_summary(summary)
        if not summary.success:
            sys.exit(1)

    finally:
        repository.close()


def export_opml(args, config: Config):
    """Write all stored podcasts to an OPML file."""
    repository = repository_from_config(config)
    try:
        sync_service = _create_sync_service(repository, config)
        count = sync_service.export_opml(args.file)
        print(f"Exported {count} podcasts to {args.file}")
    finally:
        repository.close()


def add_podcast(args, config: Config):
    """
    Add a podcast from the feed URL in `args.url`.

    Prints the title, ID and episode count on success; prints the error and
    exits with status 1 otherwise.
    """
    logger.info(f"Adding podcast from: {args.url}")

    repository = repository_from_config(config)
    try:
        sync_service = _create_sync_service(repository, config)
        summary = sync_service.add_podcast_from_url(args.url)

        outcome = summary.outcomes[0]
        if not outcome.succeeded:
            print(f"Error: {outcome.error}")
            sys.exit(1)

        podcast = repository.get_podcast(outcome.podcast_id)
        print(f"\nAdded podcast: {podcast.title if podcast else args.url}")
        print(f"  ID: {outcome.podcast_id}")
        print(f"  Episodes: {len(outcome.result.added)}")

    finally:
        repository.close()


def sync_feeds(args, config: Config):
    """Sync one podcast (`--podcast-id`) or every stored podcast."""
    repository = repository_from_config(config)
    try:
        sync_service = _create_sync_service(repository, config)

        if args.podcast_id is not None:
            logger.info(f"Syncing podcast: {args.podcast_id}")
            summary = sync_service.sync_podcast(args.podcast_id)
        else:
            logger.info("Syncing all podcasts")
            summary = sync_service.sync_all_podcasts(workers=args.workers)

        _print_summary(summary)
        if not summary.success:
            sys.exit(1)

    finally:
        repository.close()


def list_podcasts(args, config: Config):
    """Print a table of podcasts ordered by sort title."""
    repository = repository_from_config(config)
    try:
        podcasts = repository.get_podcasts()

        if not podcasts:
            print("No podcasts found")
            return

        print(f"\n{'ID':<6}  {'Title':<40}  {'Episodes':<10}  {'Unplayed'}")
        print("-" * 70)

        for podcast in podcasts:
            unplayed = sum(1 for episode in podcast.episodes if not episode.played)
            print(
                f"{podcast.id:<6}  "
                f"{podcast.title[:40]:<40}  "
                f"{len(podcast.episodes):<10}  "
                f"{unplayed}"
            )

    finally:
        repository.close()


def list_episodes(args, config: Config):
    """Print a podcast's episodes, newest first."""
    repository = repository_from_config(config)
    try:
        podcast = repository.get_podcast(args.podcast_id)
        if not podcast:
            print(f"Podcast not found: {args.podcast_id}")
            sys.exit(1)

        episodes = repository.get_episodes(args.podcast_id, include_hidden=args.all)
        print(f"\nPodcast: {podcast.title}")

        if not episodes:
            print("  No episodes")
            return

        for episode in episodes:
            published = episode.pubdate.strftime("%Y-%m-%d") if episode.pubdate else "----------"
            flags = ("P" if episode.played else " ") + ("H" if episode.hidden else " ")
            flags += "D" if episode.path else " "
            print(f"{episode.id:<6}  {published}  {flags}  {episode.title[:60]}")

    finally:
        repository.close()


def mark_played(args, config: Config):
    """Mark one or more episodes played (or unplayed with `--unplayed`)."""
    played = not args.unplayed
    repository = repository_from_config(config)
    try:
        if len(args.episode_ids) == 1:
            if not repository.set_played_status(args.episode_ids[0], played):
                print(f"Episode not found: {args.episode_ids[0]}")
                sys.exit(1)
        else:
            repository.set_all_played_status(args.episode_ids, played)

        state = "played" if played else "unplayed"
        print(f"Marked {len(args.episode_ids)} episode(s) {state}")

    finally:
        repository.close()


def hide_episode(args, config: Config):
    """Hide an episode from listings (or show it again with `--unhide`)."""
    repository = repository_from_config(config)
    try:
        if not repository.hide_episode(args.episode_id, hide=not args.unhide):
            print(f"Episode not found: {args.episode_id}")
            sys.exit(1)
        print(f"Episode {args.episode_id} {'shown' if args.unhide else 'hidden'}")
    finally:
        repository.close()


def remove_podcast(args, config: Config):
    """Delete a podcast and all of its episodes."""
    repository = repository_from_config(config)
    try:
        if not repository.remove_podcast(args.podcast_id):
            print(f"Podcast not found: {args.podcast_id}")
            sys.exit(1)
        print(f"Removed podcast {args.podcast_id}")
    finally:
        repository.close()


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="Podcast feed sync CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--env-file",
        help="Path to .env file",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # import-opml command
    import_parser = subparsers.add_parser(
        "import-opml",
        help="Import podcasts from an OPML file",
    )
    import_parser.add_argument("file", help="Path to OPML file")
    import_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be imported without making changes",
    )

    # export-opml command
    export_parser = subparsers.add_parser(
        "export-opml",
        help="Export podcasts to an OPML file",
    )
    export_parser.add_argument("file", help="Path of the OPML file to write")

    # add command
    add_parser = subparsers.add_parser(
        "add",
        help="Add a podcast from feed URL",
    )
    add_parser.add_argument("url", help="RSS feed URL")

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Sync podcast feeds",
    )
    sync_parser.add_argument(
        "--podcast-id",
        type=int,
        help="Sync specific podcast by ID",
    )
    sync_parser.add_argument(
        "--workers",
        type=_positive_int,
        help="Number of concurrent feed fetches",
    )

    # list command
    subparsers.add_parser(
        "list",
        help="List podcasts",
    )

    # episodes command
    episodes_parser = subparsers.add_parser(
        "episodes",
        help="List episodes of a podcast",
    )
    episodes_parser.add_argument("podcast_id", type=int, help="Podcast ID")
    episodes_parser.add_argument(
        "--all",
        action="store_true",
        help="Include hidden episodes",
    )

    # played command
    played_parser = subparsers.add_parser(
        "played",
        help="Mark episodes as played",
    )
    played_parser.add_argument("episode_ids", type=int, nargs="+", help="Episode IDs")
    played_parser.add_argument(
        "--unplayed",
        action="store_true",
        help="Mark as unplayed instead",
    )

    # hide command
    hide_parser = subparsers.add_parser(
        "hide",
        help="Hide an episode",
    )
    hide_parser.add_argument("episode_id", type=int, help="Episode ID")
    hide_parser.add_argument(
        "--unhide",
        action="store_true",
        help="Show a hidden episode again",
    )

    # remove command
    remove_parser = subparsers.add_parser(
        "remove",
        help="Remove a podcast and its episodes",
    )
    remove_parser.add_argument("podcast_id", type=int, help="Podcast ID")

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    # Load configuration
    config = Config(env_file=args.env_file)

    # Route to appropriate command
    commands = {
        "import-opml": import_opml,
        "export-opml": export_opml,
        "add": add_podcast,
        "sync": sync_feeds,
        "list": list_podcasts,
        "episodes": list_episodes,
        "played": mark_played,
        "hide": hide_episode,
        "remove": remove_podcast,
    }

    command_func = commands.get(args.command)
    if not command_func:
        parser.print_help()
        sys.exit(1)

    try:
        command_func(args, config)
    except PodsyncError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
