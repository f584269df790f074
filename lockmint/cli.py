import json
import logging
import signal
import sys
import threading

import click

from lockmint.config import BridgeConfig
from lockmint.supervisor import BridgeSupervisor
from lockmint.utils import setup_logging


def _load_config(env_file: str) -> BridgeConfig:
    try:
        return BridgeConfig(env_file_path=env_file)
    except ValueError as e:
        raise click.ClickException(str(e))


@click.group()
@click.option('--env-file', default='.env', show_default=True, help='Path to the .env configuration file.')
@click.pass_context
def cli(ctx, env_file):
    """Lock-and-mint bridge coordinator."""
    ctx.ensure_object(dict)
    ctx.obj['env_file'] = env_file


@cli.command()
@click.pass_context
def start(ctx):
    """Start the bridge and run until SIGINT or SIGTERM."""
    config = _load_config(ctx.obj['env_file'])
    setup_logging(config.log_level, config.log_file)

    try:
        supervisor = BridgeSupervisor.from_config(config)
        supervisor.start()
    except Exception as e:
        logging.critical(f"Failed to initialize the bridge components: {e}", exc_info=True)
        sys.exit(1)

    shutdown = threading.Event()

    def _handle_signal(signum, _frame):
        logging.info(f"Received {signal.Signals(signum).name}, shutting down gracefully...")
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    shutdown.wait()
    supervisor.stop()


@cli.command('check-config')
@click.pass_context
def check_config(ctx):
    """Validate the environment and print the effective configuration."""
    config = _load_config(ctx.obj['env_file'])
    click.echo(json.dumps(config.summary(), indent=2))


if __name__ == '__main__':
    cli()
