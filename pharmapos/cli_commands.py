"""
Flask CLI commands.

Commands:
- flask init-db: Create the tables (--reset drops them first)
- flask create-user: Create a POS user
- flask print-receipt SALE_NUMBER: Print a sale's ticket to stdout
"""

import re
import sys

import click
from sqlalchemy.exc import SQLAlchemyError

from pharmapos import database
from pharmapos.exceptions import NotFoundError
from pharmapos.models import AppUser, UserRole
from pharmapos.services import sales_service, settings_service
from pharmapos.services.printer_service import PrinterService, StreamTransport
from pharmapos.services.receipt_service import ReceiptOptions, format_receipt


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    @click.option('--reset', is_flag=True, help='Drop every table before creating them')
    def init_db(reset):
        """Create the database tables."""
        if reset:
            click.confirm('Se borrarán todos los datos. ¿Continuar?', abort=True)
            database.drop_all()
        database.create_all()
        click.echo(click.style('Tablas creadas.', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option('--name', 'full_name', default=None, help='Full name')
    @click.option('--role', type=click.Choice([role.value for role in UserRole]), default=UserRole.CASHIER.value)
    def create_user(email, password, full_name, role):
        """Create a cashier, manager or admin."""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            raise click.ClickException('Email inválido. Use formato: user@example.com')
        if len(password) < 6:
            raise click.ClickException('La contraseña debe tener al menos 6 caracteres.')

        db_session = database.get_session()
        if db_session.query(AppUser).filter_by(email=email).first():
            raise click.ClickException(f'Ya existe un usuario con el email: {email}')

        user = AppUser(email=email, full_name=full_name, role=role)
        user.set_password(password)
        try:
            db_session.add(user)
            db_session.commit()
        except SQLAlchemyError as e:
            db_session.rollback()
            raise click.ClickException(f'Error al crear usuario: {e}')
        click.echo(click.style(f'Usuario {email} creado (id {user.id}, rol {role}).', fg='green'))

    @app.cli.command('print-receipt')
    @click.argument('sale_number')
    def print_receipt(sale_number):
        """Render a sale's ticket and send it to stdout."""
        db_session = database.get_session()
        try:
            sale = sales_service.get_sale_by_number(db_session, sale_number)
        except NotFoundError as e:
            raise click.ClickException(e.message)

        print_settings = settings_service.get_print_settings(db_session)
        payment = sale.payments[0] if sale.payments else None
        options = ReceiptOptions(
            paper_width_mm=print_settings['paper_width'],
            footer=print_settings['footer_text'],
            cashier_name=sale.cashier.display_name if sale.cashier else None,
            amount_received=payment.amount_received if payment else None,
            change=payment.change_amount if payment else None,
            tax_rate=settings_service.get_tax_rate(db_session),
        )
        text = format_receipt(sale, sale.client, settings_service.get_company_info(db_session), options)

        printer = PrinterService(StreamTransport(sys.stdout))
        for _ in range(max(int(print_settings.get('copies') or 1), 1)):
            if not printer.print_receipt(text):
                raise click.ClickException('No se pudo imprimir el ticket')
