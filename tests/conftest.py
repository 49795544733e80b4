import pytest
from decimal import Decimal

from pharmapos import create_app, database
from pharmapos.models import (
    AppUser, UserRole, Product, Location, InventoryRecord, Client, LoyaltyPlan
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    return create_app('config.TestConfig')


@pytest.fixture(autouse=True)
def app_context(app):
    """Fresh schema for every test, inside an application context."""
    with app.app_context():
        database.create_all()
        yield
        database.get_session().remove()
        database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session shared with the code under test."""
    return database.get_session()


def _make_user(session, email, role, full_name):
    user = AppUser(email=email, full_name=full_name, role=role.value, active=True)
    user.set_password('password123')
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def cashier(session):
    return _make_user(session, 'cajero@farmacia.test', UserRole.CASHIER, 'Ana Cajera')


@pytest.fixture
def manager(session):
    return _make_user(session, 'gerente@farmacia.test', UserRole.MANAGER, 'Luis Gerente')


@pytest.fixture
def login(client):
    """Return a function that puts a user in the test client's Flask session."""
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
    return _login


@pytest.fixture
def locations(session):
    """Mostrador (counter) and Bodega (back store)."""
    counter = Location(name='Mostrador', active=True)
    back = Location(name='Bodega', active=True)
    session.add_all([counter, back])
    session.commit()
    return counter, back


@pytest.fixture
def products(session):
    """Paracetamol 10.00 and Ibuprofeno 25.50."""
    paracetamol = Product(sku='PARA-500', barcode='7501234567890', name='Paracetamol 500mg',
                          sale_price=Decimal('10.00'), cost_price=Decimal('6.00'))
    ibuprofeno = Product(sku='IBU-400', barcode='7509876543210', name='Ibuprofeno 400mg',
                         sale_price=Decimal('25.50'), cost_price=Decimal('15.00'))
    session.add_all([paracetamol, ibuprofeno])
    session.commit()
    return paracetamol, ibuprofeno


@pytest.fixture
def stocked(session, products, locations):
    """
    Paracetamol: 100 at Mostrador.
    Ibuprofeno: 50 at Mostrador, 20 at Bodega.
    """
    paracetamol, ibuprofeno = products
    counter, back = locations
    session.add_all([
        InventoryRecord(product_id=paracetamol.id, location_id=counter.id, current_stock=100),
        InventoryRecord(product_id=ibuprofeno.id, location_id=counter.id, current_stock=50),
        InventoryRecord(product_id=ibuprofeno.id, location_id=back.id, current_stock=20),
    ])
    session.commit()
    return products


@pytest.fixture
def customer(session):
    customer = Client(name='María López', identification_number='0912345678',
                      phone='0991234567', loyalty_points=0, total_purchases=Decimal('0'))
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture
def loyalty_plan(session):
    """One point per currency unit, no minimum purchase."""
    plan = LoyaltyPlan(name='Plan Básico', points_per_currency=Decimal('1'),
                       currency_per_point=Decimal('0.01'), min_purchase_for_points=Decimal('0'),
                       active=True)
    session.add(plan)
    session.commit()
    return plan


@pytest.fixture
def stock_of(session):
    """Return a function reading current_stock straight from the database."""
    def _stock_of(product_id, location_id):
        record = (session.query(InventoryRecord)
                  .filter_by(product_id=product_id, location_id=location_id)
                  .populate_existing()
                  .one())
        return record.current_stock
    return _stock_of
