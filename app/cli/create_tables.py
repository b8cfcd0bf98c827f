# app/cli/create_tables.py
import asyncio
import click

from app.core.config import get_settings
from app.core.enums import PlatformName
from app.database import create_all, create_engine_for, create_session_factory
from app.models.destination import Destination


@click.group()
def cli():
    """Database maintenance commands."""


@cli.command("create-tables")
def create_tables():
    """Create all database tables directly using SQLAlchemy"""
    settings = get_settings()
    if not settings.DATABASE_URL:
        raise click.ClickException("DATABASE_URL is not set")

    async def _create_tables():
        engine = create_engine_for(settings.DATABASE_URL)
        try:
            await create_all(engine)
        finally:
            await engine.dispose()

    asyncio.run(_create_tables())
    click.echo("All tables created successfully!")


@cli.command("add-destination")
@click.argument("destination_id")
@click.option("--shop-domain", required=True, help="e.g. my-shop.myshopify.com")
@click.option("--access-token", required=True, envvar="SHOPIFY_ACCESS_TOKEN")
@click.option("--shop-name", default=None)
@click.option("--currency", default="USD", show_default=True)
@click.option("--locale", default="en", show_default=True)
@click.option("--location-id", default=None, help="Inventory location GID")
def add_destination(destination_id, shop_domain, access_token, shop_name, currency, locale, location_id):
    """Register a Shopify store as a sync destination"""
    settings = get_settings()
    if not settings.DATABASE_URL:
        raise click.ClickException("DATABASE_URL is not set")

    async def _add():
        engine = create_engine_for(settings.DATABASE_URL)
        try:
            async with create_session_factory(engine)() as session:
                session.add(Destination(
                    id=destination_id,
                    platform_name=PlatformName.SHOPIFY.slug,
                    shop_domain=shop_domain,
                    shop_name=shop_name or shop_domain,
                    access_token=access_token,
                    currency=currency,
                    locale=locale,
                    default_location_id=location_id,
                    is_connected=True,
                ))
                await session.commit()
        finally:
            await engine.dispose()

    asyncio.run(_add())
    click.echo(f"Destination {destination_id} registered")


if __name__ == "__main__":
    cli()
