import logging
import os

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy import event

from auth import CredentialStore, current_identity, login_required, session_issuer
from config import Config
from errors import ApiError, PersistenceError, Unauthenticated, ValidationError
from models import db
from stores import TodoStore, TransactionStore

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    app.register_blueprint(api)
    _register_error_handlers(app)
    with app.app_context():
        if db.engine.dialect.name == 'sqlite':
            event.listen(db.engine, 'connect', _enable_sqlite_foreign_keys)
        db.create_all()
    return app


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


# ---------------------- Helpers ----------------------
def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def _ok(status=200, **payload):
    return jsonify({'success': True, **payload}), status


def _fail(message, status):
    return jsonify({'success': False, 'message': message}), status


def _register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err):
        if isinstance(err, PersistenceError):
            # Detail stays in the log, the client gets the generic message.
            logger.error('store failure on %s %s', request.method, request.path, exc_info=err.__cause__ or err)
            return _fail(PersistenceError.message, err.status_code)
        return _fail(err.message, err.status_code)

    @app.errorhandler(404)
    def handle_not_found(err):
        return _fail('Not found.', 404)

    @app.errorhandler(405)
    def handle_method_not_allowed(err):
        return _fail('Method not allowed.', 405)


def _set_session_cookie(response, token):
    cfg = current_app.config
    response.set_cookie(
        cfg['AUTH_COOKIE_NAME'],
        token,
        max_age=int(cfg['SESSION_LIFETIME_HOURS']) * 3600,
        path='/',
        httponly=True,
        secure=bool(cfg['AUTH_COOKIE_SECURE']),
        samesite='Lax',
    )


# ---------------------- Routes: Auth ----------------------
@api.route('/register', methods=['POST'])
def register():
    data = _json_body()
    CredentialStore().register(data.get('username'), data.get('password'), email=data.get('email'))
    return _ok(201, message='Registration successful.')


@api.route('/login', methods=['POST'])
def login():
    data = _json_body()
    try:
        identity = CredentialStore().verify(data.get('username'), data.get('password'))
    except ApiError:
        logger.warning('failed login for username=%r', data.get('username'))
        raise
    token = session_issuer().issue(identity)
    response, status = _ok(message='Login successful.')
    _set_session_cookie(response, token)
    logger.info('user id=%s logged in', identity.id)
    return response, status


@api.route('/logout', methods=['POST'])
def logout():
    response, status = _ok(message='Logged out.')
    response.delete_cookie(current_app.config['AUTH_COOKIE_NAME'], path='/')
    return response, status


@api.route('/me')
def me():
    identity = current_identity()
    if identity is None:
        raise Unauthenticated()
    user = CredentialStore().get(identity.id)
    if user is None:
        raise Unauthenticated()
    return _ok(user=user.to_dict())


# ---------------------- Routes: Todos ----------------------
@api.route('/todos', methods=['GET'])
@login_required
def list_todos():
    todos = TodoStore().list(g.identity.id)
    return _ok(todos=[t.to_dict() for t in todos])


@api.route('/todos', methods=['POST'])
@login_required
def create_todo():
    todo = TodoStore().create(g.identity.id, _json_body())
    return _ok(201, todo=todo.to_dict())


# ---------------------- Routes: Transactions ----------------------
@api.route('/transactions', methods=['GET'])
@login_required
def list_transactions():
    year = request.args.get('year', type=int)
    month = request.args.get('month', type=int)
    status = request.args.get('status')
    txs = TransactionStore().list(g.identity.id, year=year, month=month, status=status)
    return _ok(transactions=[tx.to_dict() for tx in txs])


@api.route('/transaction/add', methods=['POST'])
@login_required
def add_transaction():
    tx = TransactionStore().create(g.identity.id, _json_body())
    return _ok(201, message='Transaction added.', transaction=tx.to_dict())


# ---------------------- Run App ----------------------
if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 3001)), debug=True)
