"""DepthBook CLI."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from depthbook.app import DepthBookApp, setup_logging
from depthbook.book.levels import format_order_book
from depthbook.config_loader import AppConfig, load_config_with_overrides
from depthbook.constants import APP_VERSION, LOG_FORMAT
from depthbook.errors import DepthBookError, InsufficientLiquidityError
from depthbook.server.context import ServiceContext
from depthbook.server.schemas import MarketOrderRequest

config_option = click.option(
    "--config",
    type=click.Path(dir_okay=False),
    default="config/config.yaml",
    show_default=True,
    help="Path to configuration file (defaults apply if missing)",
)
symbol_option = click.option("--symbol", help="Override trading symbol, e.g. ETH/USDT")
connector_option = click.option(
    "--connector",
    type=click.Choice(["ccxt", "sim"], case_sensitive=False),
    help="Override quote connector",
)


@click.group()
@click.version_option(APP_VERSION, prog_name="depthbook")
def cli():
    """DepthBook Command Line Interface."""
    pass


@cli.command()
@config_option
@symbol_option
@connector_option
@click.option("--host", help="Override bind host")
@click.option("--port", type=int, help="Override bind port")
@click.option("--log-level", help="Override log level (DEBUG, INFO, WARNING, ERROR)")
def run(config, symbol, connector, host, port, log_level):
    """Start the order book service (updater, HTTP API and WebSocket)."""
    try:
        app = DepthBookApp(
            config_path=config,
            symbol=symbol,
            connector=connector,
            log_level=log_level,
            host=host,
            port=port,
        )
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        click.echo(f"Fatal error: {e}", err=True)
        logging.getLogger(__name__).debug("Fatal error", exc_info=True)
        sys.exit(1)


@cli.command()
@config_option
@connector_option
def smoke_test(config, connector):
    """Run a smoke test (initialize components and exit)."""
    try:
        app = DepthBookApp(config_path=config, connector=connector)
        asyncio.run(app.initialize())
        click.echo("Smoke test passed: Components initialized successfully.")
    except Exception as e:
        click.echo(f"Smoke test failed: {e}", err=True)
        sys.exit(1)


async def _one_cycle(cfg: AppConfig) -> ServiceContext:
    context = ServiceContext.build(cfg)
    await context.connector.connect()
    await context.scheduler.trigger_update()
    return context


def _load(config, symbol, connector) -> AppConfig:
    path = Path(config) if config else None
    cfg = load_config_with_overrides(
        path if path and path.exists() else None, symbol=symbol, connector=connector
    )
    setup_logging(cfg)
    return cfg


@cli.command()
@config_option
@symbol_option
@connector_option
@click.option("--levels", default=5, show_default=True, help="Levels per side to print")
def snapshot(config, symbol, connector, levels):
    """Fetch one order book and print the top levels."""
    cfg = _load(config, symbol, connector)

    async def _run() -> None:
        context = await _one_cycle(cfg)
        try:
            book = context.store.read_top(levels)
            if book.is_empty:
                raise click.ClickException(
                    context.scheduler.last_error or "Order book data not available"
                )
            click.echo(f"{cfg.exchange.symbol} ({context.connector.name})")
            click.echo(format_order_book(book, levels))
        finally:
            await context.connector.close()

    asyncio.run(_run())


@cli.command()
@config_option
@symbol_option
@connector_option
@click.option(
    "--side", type=click.Choice(["buy", "sell"], case_sensitive=False), required=True
)
@click.option("--amount", required=True, help="Order size in base currency")
def simulate(config, symbol, connector, side, amount):
    """Fetch one order book and simulate a market order against it."""
    cfg = _load(config, symbol, connector)

    try:
        order = MarketOrderRequest.model_validate(
            {"side": side, "amount": amount}, context={"market_order": cfg.market_order}
        )
    except ValidationError as e:
        raise click.BadParameter(e.errors()[0]["msg"], param_hint="--amount") from e

    async def _run() -> None:
        context = await _one_cycle(cfg)
        try:
            result = context.service.execute(order.side, order.amount, client_ip="cli")
            click.echo(json.dumps(result.to_dict(), indent=2))
        except InsufficientLiquidityError as e:
            click.echo(json.dumps(e.result.to_dict(), indent=2))
            raise click.ClickException(str(e)) from e
        except DepthBookError as e:
            raise click.ClickException(str(e)) from e
        finally:
            await context.connector.close()

    asyncio.run(_run())


main = cli


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    main()
