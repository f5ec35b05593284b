import pytest
import os
import tempfile
import uuid
from decimal import Decimal

# TestConfig reads TEST_DATABASE_URL at import time
_db_dir = tempfile.mkdtemp(prefix='pos-tests-')
os.environ.setdefault('TEST_DATABASE_URL', f"sqlite:///{os.path.join(_db_dir, 'pos_test.db')}")

from pos_app import create_app
from pos_app import database
from pos_app.database import Base, get_session
from pos_app.models import (
    AppUser, UserRole, Product, ProductStock, Promotion, PromotionType, ProductPromotion
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    database.drop_all()
    database.create_all()
    yield app
    database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied afterwards."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


@pytest.fixture(scope='function')
def cashier(session):
    """Create an active cashier."""
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'cajero-{suffix}@test.com',
        full_name='Cajero Uno',
        role=UserRole.CASHIER.value,
        active=True
    )
    user.set_password('password123')
    session.add(user)
    session.commit()
    return user.id


def _add_product(session, name, price, category, stock, active=True):
    product = Product(name=name, sale_price=Decimal(price), category=category, active=active)
    product.stock = ProductStock(on_hand_qty=stock)
    session.add(product)
    session.flush()
    return product.id


@pytest.fixture(scope='function')
def catalog(session):
    """
    Small store catalog.

    Returns a dict of product ids by key. Gelatins are bound to the 2x1.
    """
    ids = {
        'gelatina': _add_product(session, 'Gelatina de Fresa', 2000, 'Postres', 10),
        'gelatina_uva': _add_product(session, 'Gelatina de Uva', 2000, 'Postres', 10),
        'papas': _add_product(session, 'Papas Fritas', 3500, 'Snacks', 100),
        'empanada': _add_product(session, 'Empanada de Carne', 12000, 'Comidas', 5),
        'agua': _add_product(session, 'Agua 500ml', 5000, 'Bebidas', 1),
        'descontinuado': _add_product(session, 'Bolis de Mango', 1500, 'Helados', 20, active=False),
    }

    promotion = Promotion(
        id='gelatina-2x1',
        name='Gelatina 2x1',
        type=PromotionType.TWO_FOR_ONE.value,
        discount_value=Decimal('0'),
        min_quantity=2,
        is_active=True
    )
    session.add(promotion)
    session.flush()
    for key in ('gelatina', 'gelatina_uva'):
        session.add(ProductPromotion(product_id=ids[key], promotion_id=promotion.id))
    session.commit()
    return ids


@pytest.fixture(scope='function')
def authenticated_client(client, cashier):
    """Create authenticated client for the cashier."""
    with client.session_transaction() as sess:
        sess['user_id'] = cashier
    return client


@pytest.fixture(scope='function')
def stock_of(session):
    """Current on-hand quantity of a product, read fresh from the database."""
    def _stock_of(product_id):
        session.expire_all()
        return session.get(ProductStock, product_id).on_hand_qty
    return _stock_of
