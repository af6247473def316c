# marketsync/cli/__init__.py
import click

from .check_ledger import check_ledger
from .create_tables import create_tables
from .low_stock import low_stock
from .replay_webhooks import replay_webhooks
from .sync_orders import sync_orders


@click.group()
def cli():
    """Marketplace order sync maintenance commands"""


cli.add_command(sync_orders)
cli.add_command(replay_webhooks)
cli.add_command(check_ledger)
cli.add_command(low_stock)
cli.add_command(create_tables)
