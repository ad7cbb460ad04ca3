"""Main CLI entry point"""

import asyncio
import json
import signal
from typing import List

import click

from logship.core.config import AppConfig, build_docker_settings, load_config
from logship.core.logging import logger
from logship.core.logging_config import setup_logging
from logship.inputs import InputSource, LogEvent, get_input_registry
from logship.inputs.docker import ContainerMatcher, DockerRuntimeClient, SinceDB
from logship.utils import OutputFormatter, error_handler, format_position, truncate_id


@click.group()
@click.option('--config', '-c', type=click.Path(dir_okay=False),
              default='logship.yaml', show_default=True,
              help='Config file location')
@click.option('--log-level', help='Override the configured log level')
@click.pass_context
@error_handler
def cli(ctx, config, log_level):
    """logship - ship Docker container logs"""
    cfg = load_config(config)
    if log_level:
        cfg.log_level = log_level
    setup_logging(cfg.log_level)

    ctx.obj = {
        'config': cfg,
    }


@cli.command()
@click.pass_context
@error_handler
def run(ctx):
    """Follow all configured inputs and print events as JSON lines"""
    cfg: AppConfig = ctx.obj['config']
    registry = get_input_registry()
    inputs = [registry.create(raw) for raw in cfg.input]
    asyncio.run(_run_inputs(inputs))


async def _run_inputs(inputs: List[InputSource]) -> None:
    queue: "asyncio.Queue[LogEvent]" = asyncio.Queue()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    tasks = [source.start(queue) for source in inputs]
    printer = asyncio.create_task(_print_events(queue))
    stopper = asyncio.create_task(stop.wait())

    # A signal or an input ending (always fatal) stops everything
    await asyncio.wait([*tasks, stopper], return_when=asyncio.FIRST_COMPLETED)
    logger.info("Shutting down")

    for source in inputs:
        await source.stop()
    stopper.cancel()
    printer.cancel()
    await asyncio.gather(stopper, printer, return_exceptions=True)

    while not queue.empty():
        _echo_event(queue.get_nowait())

    for task in tasks:
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()


async def _print_events(queue: "asyncio.Queue[LogEvent]") -> None:
    while True:
        _echo_event(await queue.get())


def _echo_event(event: LogEvent) -> None:
    click.echo(json.dumps(event.to_dict(), default=str))


@cli.command()
@click.option('--output', '-o', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@click.pass_context
@error_handler
def containers(ctx, output):
    """List running containers and whether they would be followed"""
    cfg: AppConfig = ctx.obj['config']
    docker_inputs = [raw for raw in cfg.input if raw.get('type') == 'docker']
    if not docker_inputs:
        click.echo("No docker input configured", err=True)
        ctx.exit(1)

    settings = build_docker_settings(docker_inputs[0])
    matcher = ContainerMatcher.from_patterns(settings.include_patterns, settings.exclude_patterns)
    sincedb = SinceDB(settings.sincepath, start_position=settings.start_position)

    rows = asyncio.run(_describe_containers(settings.host, matcher, sincedb))
    click.echo(OutputFormatter(output).format(rows))


async def _describe_containers(host: str, matcher: ContainerMatcher, sincedb: SinceDB):
    runtime = DockerRuntimeClient(host)
    try:
        await runtime.ping()
        found = await runtime.list_containers()
    finally:
        await runtime.close()

    return [
        {
            'id': truncate_id(container.id),
            'name': container.name,
            'decision': matcher.decide(container.names).value,
            'position': format_position(sincedb.get(container.id)),
        }
        for container in found
    ]


if __name__ == '__main__':
    cli()
