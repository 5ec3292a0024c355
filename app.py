# app.py - builds the flask app, config, error handling and starter data
# run this file starting the server: python app.py

import logging
import os

from flask import Flask, current_app, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from models import db, FOLDER, ITEM
import storage
from auth import bp as auth_bp, login_manager
from routes import bp as api_bp


def create_app(test_config=None):
    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///optical.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'optical-shop-dev-key')
    app.config['UPLOAD_FOLDER'] = os.environ.get('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))
    app.config['MAX_CONTENT_LENGTH'] = 5 * 1024 * 1024  # 5MB upload ceiling
    app.config['ALLOWED_EMAILS'] = [e for e in os.environ.get('ALLOWED_EMAILS', '').split(',') if e.strip()]
    app.config['AUTH_EMAIL_HEADER'] = 'X-Forwarded-Email'
    app.config['OAUTH_LOGIN_URL'] = os.environ.get('OAUTH_LOGIN_URL', '/__replauthlogin')
    app.config['SEED_DATA'] = True
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config['LOG_LEVEL'])

    db.init_app(app)
    login_manager.init_app(app)
    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    register_error_handlers(app)

    # setup database and default data
    with app.app_context():
        db.create_all()
        if app.config['SEED_DATA']:
            seed_database()

    return app


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def validation_error(e):
        err = e.errors()[0]
        field = '.'.join(str(part) for part in err.get('loc', ()))
        return jsonify({'message': err.get('msg', 'Invalid input'), 'field': field or None}), 400

    @app.errorhandler(storage.StorageError)
    def storage_error(e):
        db.session.rollback()
        return jsonify({'message': str(e)}), 400

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({'message': e.description}), e.code

    @app.errorhandler(Exception)
    def internal_error(e):
        db.session.rollback()
        app.logger.exception('unhandled error')
        return jsonify({'message': 'Internal server error'}), 500


def seed_database():
    # starter lens catalog for an empty shop
    if storage.list_categories():
        return
    current_app.logger.info('seeding starter catalog')

    def add(name, type=FOLDER, parent=None, **prices):
        return storage.create_category({
            'name': name,
            'type': type,
            'parent_id': parent.id if parent else None,
            'sort_order': 0,
            **prices,
        })

    single_vision = add('Single Vision')
    minus = add('Minus (-)', parent=single_vision)
    hc = add('HC', parent=minus)
    add('-6.00 to -2.00', ITEM, hc, customer_price=650, wholesale_price=520)
    arc = add('ARC', parent=minus)
    add('-6.00 to -2.00', ITEM, arc, customer_price=750, wholesale_price=600)
    plus = add('Plus (+)', parent=single_vision)
    bluecut = add('BLUECUT', parent=plus)
    add('+2.00 to +6.00', ITEM, bluecut, customer_price=1200, wholesale_price=900)

    if not storage.list_presets():
        preset = storage.create_preset('Default Preset')
        storage.activate_preset(preset.id)


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app = create_app()
    app.run(debug=True, port=5001)
