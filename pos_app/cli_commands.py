"""
Flask CLI commands.

Commands:
- flask init-db: Create the tables
- flask seed-catalog: Load the demo store catalog and its 2x1 promotion
- flask create-user: Create a cashier or admin user
"""

import click
import re
from decimal import Decimal
from pos_app.database import get_session, create_all
from pos_app.models import (
    AppUser, UserRole, Product, ProductStock, Promotion, PromotionType, ProductPromotion
)

DEMO_PRODUCTS = [
    ('Papas Fritas', 3500, 'Snacks', 100),
    ('Papas Naturales', 3000, 'Snacks', 80),
    ('Bolis de Fresa', 1500, 'Helados', 150),
    ('Bolis de Limon', 1500, 'Helados', 150),
    ('Bolis de Mango', 1500, 'Helados', 120),
    ('Empanada de Carne', 4000, 'Comidas', 50),
    ('Empanada de Pollo', 4000, 'Comidas', 50),
    ('Empanada de Queso', 3500, 'Comidas', 60),
    ('Gelatina de Fresa', 2000, 'Postres', 80),
    ('Gelatina de Uva', 2000, 'Postres', 70),
    ('Gelatina de Limon', 2000, 'Postres', 75),
    ('Coca Cola 350ml', 3000, 'Bebidas', 200),
    ('Coca Cola 600ml', 4500, 'Bebidas', 150),
    ('Agua 500ml', 2000, 'Bebidas', 250),
    ('Agua 1L', 3500, 'Bebidas', 100),
]

DEMO_PROMOTION_ID = 'gelatina-2x1'


def seed_catalog(db_session):
    """Insert demo products and bind the gelatin 2x1. Returns products created."""
    created = 0
    for name, price, category, stock in DEMO_PRODUCTS:
        product = db_session.query(Product).filter_by(name=name).first()
        if product:
            continue
        product = Product(name=name, sale_price=Decimal(price), category=category, active=True)
        product.stock = ProductStock(on_hand_qty=stock)
        db_session.add(product)
        created += 1
    db_session.flush()

    promotion = db_session.get(Promotion, DEMO_PROMOTION_ID)
    if not promotion:
        promotion = Promotion(
            id=DEMO_PROMOTION_ID,
            name='Gelatina 2x1',
            type=PromotionType.TWO_FOR_ONE.value,
            discount_value=Decimal('0'),
            min_quantity=2,
            is_active=True
        )
        db_session.add(promotion)
        db_session.flush()

    gelatins = db_session.query(Product).filter(Product.name.ilike('%gelatina%')).order_by(Product.id).all()
    bound = {link.product_id for link in promotion.product_links}
    for product in gelatins:
        if product.id not in bound:
            db_session.add(ProductPromotion(product_id=product.id, promotion_id=promotion.id))

    db_session.commit()
    return created


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        create_all()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('seed-catalog')
    def seed_catalog_command():
        """Load the demo catalog (products, stock and the gelatin 2x1)."""
        db_session = get_session()
        try:
            created = seed_catalog(db_session)
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al cargar el catálogo: {str(e)}', fg='red'))
            raise SystemExit(1)
        click.echo(click.style(f'✅ Catálogo cargado ({created} productos nuevos)', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--name', prompt=True, help='Full name')
    @click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.CASHIER.value)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
    def create_user(email, name, role, password):
        """Create a cashier or admin user."""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Email inválido. Use formato: user@example.com', fg='red'))
            return

        if len(password) < 6:
            click.echo(click.style('❌ La contraseña debe tener al menos 6 caracteres.', fg='red'))
            return

        db_session = get_session()
        if db_session.query(AppUser).filter_by(email=email).first():
            click.echo(click.style(f'❌ Ya existe un usuario con el email: {email}', fg='red'))
            return

        try:
            user = AppUser(email=email, full_name=name, role=role, active=True)
            user.set_password(password)
            db_session.add(user)
            db_session.commit()

            click.echo(click.style('\n✅ Usuario creado exitosamente!', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   Rol: {role}')
            click.echo(f'   ID: {user.id}')
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al crear usuario: {str(e)}', fg='red'))
