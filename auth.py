# auth.py - login through the external oauth front door
# the proxy in front of the app handles the oauth dance and passes the email on

from flask import Blueprint, abort, current_app, jsonify, redirect, request
from flask_login import LoginManager, login_user, logout_user, login_required, current_user

from models import db, User

bp = Blueprint('auth', __name__)

login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'message': 'Not logged in'}), 401


def is_allowed(email):
    allowed = {e.strip().lower() for e in current_app.config['ALLOWED_EMAILS'] if e.strip()}
    return bool(email) and email.lower() in allowed


@bp.route('/api/login')
def login():
    if current_user.is_authenticated:
        return redirect('/')
    email = (request.headers.get(current_app.config['AUTH_EMAIL_HEADER']) or '').strip().lower()
    if not email:
        return redirect(current_app.config['OAUTH_LOGIN_URL'])
    if not is_allowed(email):
        current_app.logger.warning('login refused for %s', email)
        abort(403, 'This email is not authorized to access the application')

    user = db.session.execute(db.select(User).filter_by(email=email)).scalar()
    if user is None:
        user = User(email=email)
        db.session.add(user)
        db.session.commit()
    login_user(user)
    current_app.logger.info('%s logged in', email)
    return redirect('/')


@bp.route('/api/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@bp.route('/api/auth/user')
@login_required
def user():
    return jsonify({'email': current_user.email, 'isWhitelisted': is_allowed(current_user.email)})
