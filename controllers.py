import logging
from functools import wraps

from bson.errors import InvalidId
from bson.objectid import ObjectId
from flask import current_app, flash, redirect, render_template, request, session, url_for
from flask_login import LoginManager, UserMixin, current_user, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from db import users_collection

logger = logging.getLogger(__name__)

login_manager = LoginManager()
login_manager.login_view = 'app.login_get'
login_manager.login_message = 'Please log in to see the dashboard.'

DB_UNAVAILABLE = 'The user database is unavailable right now. Please try again later.'


# --- Custom User Class for Flask-Login ---
class User(UserMixin):
    def __init__(self, user_data):
        self.id = str(user_data["_id"])
        self.username = user_data["username"]
        self.email = user_data["email"]
        self.password_hash = user_data["password"]

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


# --- User Loader ---
@login_manager.user_loader
def load_user(user_id):
    users = users_collection()
    if users is None:
        return None
    try:
        user_data = users.find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        return None
    if user_data:
        return User(user_data)
    return None


def is_auth(view):
    """Only let requests through whose session carries the isAuth flag."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        if session.get('isAuth'):
            return view(*args, **kwargs)
        return current_app.login_manager.unauthorized()
    return wrapper


# --- Handlers ---
def landing_page():
    return render_template('landing.html')


def login_get():
    return render_template('login.html')


def login_post():
    email = request.form.get('email', '').strip()
    password = request.form.get('password', '')

    users = users_collection()
    if users is None:
        flash(DB_UNAVAILABLE)
        return redirect(url_for('app.login_get'))

    user_data = users.find_one({"email": email})
    if not user_data:
        flash(f"No account found for '{email}'.")
        return redirect(url_for('app.login_get'))

    user = User(user_data)
    if not user.check_password(password):
        flash('Incorrect password, please try again.')
        return redirect(url_for('app.login_get'))

    login_user(user)
    session['isAuth'] = True
    return redirect(url_for('app.dashboard_get'))


def register_get():
    return render_template('register.html')


def register_post():
    username = request.form.get('username', '').strip()
    email = request.form.get('email', '').strip()
    password = request.form.get('password', '')

    if not username or not email or not password:
        flash('Username, email and password are all required.')
        return redirect(url_for('app.register_get'))

    users = users_collection()
    if users is None:
        flash(DB_UNAVAILABLE)
        return redirect(url_for('app.register_get'))

    if users.find_one({"email": email}):
        flash('An account with that email already exists.')
        return redirect(url_for('app.register_get'))

    users.insert_one({
        "username": username,
        "email": email,
        "password": generate_password_hash(password, method='pbkdf2:sha256'),
    })
    logger.info("Registered new user")
    flash('Account created, you can log in now.')
    return redirect(url_for('app.login_get'))


def dashboard_get():
    username = current_user.username if current_user.is_authenticated else None
    return render_template('dashboard.html', username=username)


def logout_post():
    logout_user()
    session.clear()
    return redirect(url_for('app.landing_page'))


def test_session():
    session['isAuth'] = True
    logger.debug("Session initialized: %s", dict(session))
    return 'Hello from Flask!'
