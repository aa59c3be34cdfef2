import os, sys, pytest
# Ensure the backend directory is on path so 'budget_tracker' can be imported without installing
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from budget_tracker import create_app, get_db
from budget_tracker.models import Base  # registers every table before create_all


@pytest.fixture(scope='session', autouse=True)
def app_instance(tmp_path_factory):
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({
        'TESTING': True,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
    })
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_context):
    return app_context.test_client()
