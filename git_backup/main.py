#!/usr/bin/env python3
"""
git-backup - command line entry point

Usage:
    git-backup --config.file git-backup.yml --backup.path /backups

Exit codes:
    0    every repository was backed up
    1    the configuration could not be loaded
    100  one or more repositories failed
    110  a source could not be reached, authenticated or listed
    111  the configuration contains no sources
"""

import click

from . import __version__
from .config.config import ConfigManager
from .errors import ConfigError, DeliveryError
from .logger.logger import configure_loggers, get_logger
from .notify.slack_notifier import SlackNotifier
from .runner.backup_runner import EXIT_CONFIG_ERROR, EXIT_NO_SOURCES, BackupRunner
from .sync.memory import MemoryMonitor
from .sync.sync_engine import SyncEngine


@click.command("git-backup")
@click.option("--config.file", "config_file", default="git-backup.yml", show_default=True,
              help="The path to your config file.")
@click.option("--backup.path", "backup_path", default="backup", show_default=True,
              help="The target path to the backup folder.")
@click.option("--backup.fail-at-end", "fail_at_end", is_flag=True,
              help="Fail at the end of backing up repositories, rather than right away.")
@click.option("--backup.bare-clone", "bare_clone", is_flag=True,
              help="Make bare clones without checking out the main branch.")
@click.option("--insecure", is_flag=True,
              help="Disable verification of SSL/TLS certificates.")
@click.option("--slack.webhook", "slack_webhook", default=None,
              help="Slack webhook URL for notifications (default: $SLACK_WEBHOOK_URL).")
@click.option("--memory.stats/--no-memory.stats", "memory_stats", default=None,
              help="Log memory usage around clone and fetch (default: $BACKUP_MEMORY_STATS or on).")
@click.option("--env.file", "env_file", default=".env", show_default=True,
              help="Optional .env file with environment variables.")
@click.version_option(__version__, prog_name="git-backup")
@click.pass_context
def cli(ctx: click.Context, config_file, backup_path, fail_at_end, bare_clone, insecure,
        slack_webhook, memory_stats, env_file) -> None:
    """Mirror every repository of the configured sources to local disk."""
    logger = get_logger("main")

    backup = {
        "backup_path": backup_path,
        "fail_at_end": fail_at_end,
        "bare_clone": bare_clone,
        "insecure": insecure,
    }
    if memory_stats is not None:
        backup["memory_stats"] = memory_stats

    try:
        config = ConfigManager(config_file=config_file, env_file=env_file).load(
            backup=backup, webhook_url=slack_webhook
        )
    except ConfigError as e:
        logger.error(f"Error: {e}")
        ctx.exit(EXIT_CONFIG_ERROR)

    sources = config.build_sources()
    if not sources:
        logger.error(
            f"Found a config file at [{config_file}] but detected no sources. "
            f"Are you sure the file is properly formed?"
        )
        ctx.exit(EXIT_NO_SOURCES)

    configure_loggers(config.log)
    logger.info(f"insecure: {config.backup.insecure}")

    engine = SyncEngine(
        log_config=config.log,
        proxy_config=config.proxy,
        insecure=config.backup.insecure,
        memory_monitor=MemoryMonitor(enabled=config.backup.memory_stats, log_config=config.log),
    )
    runner = BackupRunner(config.backup, engine, log_config=config.log)

    try:
        summary = runner.run(sources)
    finally:
        for source in sources:
            source.close()

    webhook_url = config.notification.webhook_url
    if webhook_url:
        notifier = SlackNotifier(log_config=config.log, proxy_config=config.proxy, insecure=config.backup.insecure)
        try:
            notifier.notify(webhook_url, summary)
        except DeliveryError as e:
            logger.error(f"Failed to send Slack notification: {e}")
    else:
        logger.info("No Slack webhook URL configured, skipping notification")

    ctx.exit(summary.exit_code)


def main() -> None:
    """Console script entry point."""
    cli(prog_name="git-backup")


if __name__ == "__main__":
    main()
