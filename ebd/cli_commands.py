"""
Flask CLI commands for operators and schedulers.

Commands:
- flask init-db: create missing tables
- flask create-tenant: register a tenant
- flask connect-bling: store a tenant's Bling OAuth client credentials
- flask sync-bling-orders / sync-royalties / sync-payments: run a sync flow
- flask sync-shopify-order: mirror one Shopify order through the Admin API
"""
import re
from datetime import date

import click

from ebd.database import get_session, create_all
from ebd.exceptions import EbdError
from ebd.models import Tenant, ProviderToken
from ebd.services import erp_sync_service, payment_sync_service, providers
from ebd.services.shopify_service import upsert_shopify_order

SLUG_PATTERN = r'^[a-z0-9]+(?:-[a-z0-9]+)*$'


def _tenant_or_abort(slug):
    tenant = get_session().query(Tenant).filter_by(slug=slug).first()
    if not tenant:
        raise click.ClickException(f'Tenant não encontrado: {slug}')
    return tenant


def _echo_result(title, result, keys):
    click.echo(click.style(f'\n✅ {title}', fg='green', bold=True))
    for key in keys:
        if key in result:
            click.echo(f'   {key}: {result[key]}')


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        create_all()
        click.echo(click.style('✅ Tabelas criadas', fg='green'))

    @app.cli.command('create-tenant')
    @click.option('--slug', prompt=True, help='URL-safe identifier (X-Tenant header)')
    @click.option('--name', prompt=True, help='Display name')
    def create_tenant(slug, name):
        """Create a new tenant."""
        if not re.match(SLUG_PATTERN, slug):
            click.echo(click.style('❌ Slug inválido. Use letras minúsculas, números e hífens.', fg='red'))
            return

        session = get_session()
        if session.query(Tenant).filter_by(slug=slug).first():
            click.echo(click.style(f'❌ Já existe um tenant com o slug: {slug}', fg='red'))
            return

        tenant = Tenant(slug=slug, name=name)
        session.add(tenant)
        session.commit()
        click.echo(click.style('\n✅ Tenant criado com sucesso!', fg='green', bold=True))
        click.echo(f'   Slug: {slug}')
        click.echo(f'   ID: {tenant.id}')

    @app.cli.command('connect-bling')
    @click.option('--tenant', 'slug', required=True, help='Tenant slug')
    @click.option('--client-id', prompt=True, help='Bling OAuth client id')
    @click.option('--client-secret', prompt=True, hide_input=True, help='Bling OAuth client secret')
    def connect_bling(slug, client_id, client_secret):
        """Store Bling client credentials; finish with the OAuth callback (?state=<slug>)."""
        session = get_session()
        tenant = _tenant_or_abort(slug)
        token = session.query(ProviderToken).filter_by(tenant_id=tenant.id, provider='bling').first()
        if token is None:
            token = ProviderToken(tenant_id=tenant.id, provider='bling')
            session.add(token)
        token.client_id = client_id
        token.client_secret = client_secret
        session.commit()
        click.echo(click.style(f'✅ Credenciais Bling salvas para {slug}', fg='green'))

    @app.cli.command('sync-bling-orders')
    @click.option('--tenant', 'slug', required=True, help='Tenant slug')
    @click.option('--limit', type=int, default=None, help='Orders per page')
    @click.option('--force', is_flag=True, help='Ignore the staleness window')
    @click.option('--all-pages', is_flag=True, help='Follow the cursor until nothing remains')
    def sync_bling_orders(slug, limit, force, all_pages):
        """Refresh ERP order statuses from Bling."""
        session = get_session()
        tenant = _tenant_or_abort(slug)
        client = providers.get_bling_client(session, tenant.id)

        cursor = None
        while True:
            try:
                result = erp_sync_service.sync_order_statuses(
                    session, tenant.id, client, limit=limit, cursor=cursor, force=force
                )
                session.commit()
            except EbdError as e:
                session.rollback()
                raise click.ClickException(e.message)
            _echo_result('Pedidos sincronizados', result, ('synced', 'failed', 'nfe_triggered', 'remaining'))
            cursor = result.get('next_cursor')
            if not all_pages or not cursor:
                break

    @app.cli.command('sync-royalties')
    @click.option('--tenant', 'slug', required=True, help='Tenant slug')
    @click.option('--date-from', type=click.DateTime(formats=['%Y-%m-%d']), default=None)
    @click.option('--date-to', type=click.DateTime(formats=['%Y-%m-%d']), default=None)
    @click.option('--max-nfes', type=int, default=30, help='NF-es per run')
    @click.option('--skip', type=int, default=0, help='NF-es to skip (pagination)')
    def sync_royalties(slug, date_from, date_to, max_nfes, skip):
        """Import royalty sales from authorized NF-es."""
        session = get_session()
        tenant = _tenant_or_abort(slug)
        try:
            result = erp_sync_service.sync_royalty_sales(
                session, tenant.id, providers.get_bling_client(session, tenant.id),
                date_from=date_from.date() if date_from else None,
                date_to=date_to.date() if date_to else date.today(),
                max_invoices=max_nfes,
                skip=skip,
            )
            session.commit()
        except EbdError as e:
            session.rollback()
            raise click.ClickException(e.message)
        _echo_result('Royalties sincronizados', result,
                     ('nfes_processed', 'inserted', 'already_existing', 'errors', 'next_skip'))

    @app.cli.command('sync-payments')
    @click.option('--tenant', 'slug', required=True, help='Tenant slug')
    @click.option('--limit', type=int, default=None, help='Orders per page')
    def sync_payments(slug, limit):
        """Reconcile open Mercado Pago payments."""
        session = get_session()
        tenant = _tenant_or_abort(slug)
        try:
            result = payment_sync_service.sync_pending_payments(
                session, tenant.id,
                providers.get_mercadopago(),
                providers.get_bling_client(session, tenant.id),
                limit=limit,
            )
            session.commit()
        except EbdError as e:
            session.rollback()
            raise click.ClickException(e.message)
        _echo_result('Pagamentos sincronizados', result,
                     ('processed', 'approved', 'rejected', 'pending', 'failed', 'remaining'))

    @app.cli.command('sync-shopify-order')
    @click.option('--tenant', 'slug', required=True, help='Tenant slug')
    @click.option('--order-id', required=True, help='Shopify order id')
    def sync_shopify_order(slug, order_id):
        """Fetch one order from the Shopify Admin API (missed webhooks)."""
        session = get_session()
        tenant = _tenant_or_abort(slug)
        try:
            payload = providers.get_shopify_admin().get_order(order_id)
            if payload is None:
                raise click.ClickException(f'Pedido Shopify não encontrado: {order_id}')
            order, created = upsert_shopify_order(session, tenant.id, payload)
            session.commit()
        except EbdError as e:
            session.rollback()
            raise click.ClickException(e.message)
        click.echo(click.style(f"✅ Pedido {order.name or order.shopify_order_id} {'criado' if created else 'atualizado'}", fg='green'))
        click.echo(f'   Documento: {order.customer_document or "-"} ({order.document_source or "não encontrado"})')
