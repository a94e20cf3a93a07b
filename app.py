import os
import re
import math
import secrets
import logging
from dotenv import load_dotenv
load_dotenv()  # Load .env for local dev (the host sets env vars directly)

from datetime import datetime
from flask import Flask, render_template, request, redirect, url_for, flash, session, send_from_directory, jsonify
from werkzeug.utils import secure_filename
from flask_login import LoginManager, login_user, logout_user, login_required, current_user
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy.orm import joinedload
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

# Import Models
from models import db, User, Item

# Import Constants
from constants import (
    MARKETPLACE_NAME, DEFAULT_INSTITUTE_EMAIL_DOMAIN,
    ITEM_CATEGORIES, LISTING_TYPES, PRICE_TYPES,
    MAX_UPLOAD_SIZE, MAX_IMAGES_PER_LISTING, ALLOWED_EXTENSIONS, ALLOWED_MIME_TYPES,
    MIN_PRICE, MAX_PRICE,
    MAX_TITLE_LENGTH, MAX_DESCRIPTION_LENGTH, MAX_CONDITION_LENGTH,
    MAX_EMAIL_LENGTH, MAX_NAME_LENGTH, MAX_DEPARTMENT_LENGTH, MAX_SCHOLAR_ID_LENGTH,
    DEFAULT_COUNTRY_CODE, ITEMS_PER_PAGE, RECENT_ITEMS_COUNT, RATE_LIMIT_LOGIN
)
from storage import init_storage, get_storage_instance
from identity import init_identity, get_identity, IdentityError, ProviderSession
from auth_callback import (
    extract_credential, CallbackReconciler, AuthCode, ImplicitToken, LOADING, SUCCESS
)
from domain_gate import is_institutional_email, is_protected_path, rejection_message

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# --- APP CONFIGURATION ---
app = Flask(__name__)

# SECURITY: This secret key signs the session cookie that carries the login.
app.secret_key = os.environ.get('SECRET_KEY', 'dev_key_for_local_use')

# 1. DATABASE CONFIGURATION
db_url = os.environ.get('DATABASE_URL')
if db_url:
    # Fix for SQLAlchemy: some hosts give 'postgres://', but SQLAlchemy needs 'postgresql://'
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    app.config['SQLALCHEMY_DATABASE_URI'] = db_url
else:
    # Local fallback
    app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///marketplace.db'

app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

# 2. STORAGE CONFIGURATION
if os.environ.get('UPLOAD_FOLDER'):
    app.config['UPLOAD_FOLDER'] = os.environ['UPLOAD_FOLDER']
elif os.path.exists('/var/data'):
    app.config['UPLOAD_FOLDER'] = '/var/data'
else:
    # Local fallback
    app.config['UPLOAD_FOLDER'] = 'static/uploads'

# Room for a full set of listing photos plus the form fields
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_SIZE * MAX_IMAGES_PER_LISTING + 1024 * 1024

# 3. AUTH CONFIGURATION
app.config['INSTITUTE_EMAIL_DOMAIN'] = os.environ.get('INSTITUTE_EMAIL_DOMAIN', DEFAULT_INSTITUTE_EMAIL_DOMAIN)
# Public base URL used in provider redirects (falls back to the request host)
app.config['SITE_URL'] = os.environ.get('SITE_URL', '').rstrip('/')
# When a code exchange fails at /api/auth/callback: True sends the user home
# unauthenticated, False sends them to the login page with the error
app.config['AUTH_CALLBACK_FAIL_OPEN'] = os.environ.get('AUTH_CALLBACK_FAIL_OPEN', 'True').lower() == 'true'
app.config['RATELIMIT_ENABLED'] = os.environ.get('RATELIMIT_ENABLED', 'True').lower() == 'true'

# Initialize DB & Migrations
db.init_app(app)
migrate = Migrate(app, db)

# CSRF Protection
csrf = CSRFProtect(app)

# Rate Limiting
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=["500 per day", "100 per hour"],
    storage_uri="memory://"
)

# --- EXTERNAL SERVICES CONFIGURATION ---

# PHOTO STORAGE (S3 when AWS_S3_BUCKET is set, local disk otherwise)
init_storage(app)

# IDENTITY PROVIDER (magic links, Google OAuth, sessions)
init_identity(app)

# LOGIN MANAGER
login_manager = LoginManager()
login_manager.init_app(app)
login_manager.login_view = 'auth_login'
login_manager.login_message = "Please sign in with your Institute email to continue."
login_manager.login_message_category = 'info'

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, user_id)


@app.context_processor
def inject_marketplace_globals():
    """Make marketplace settings available to all templates"""
    profile_incomplete = current_user.is_authenticated and not current_user.is_profile_complete
    return dict(
        marketplace_name=MARKETPLACE_NAME,
        institute_domain=app.config['INSTITUTE_EMAIL_DOMAIN'],
        item_categories=ITEM_CATEGORIES,
        listing_types=LISTING_TYPES,
        price_types=PRICE_TYPES,
        max_images=MAX_IMAGES_PER_LISTING,
        profile_incomplete=profile_incomplete
    )


# --- AUTH SESSION HELPERS ---

def _external_url(endpoint, **values):
    """Absolute URL for provider redirects, pinned to SITE_URL when configured."""
    if app.config['SITE_URL']:
        return app.config['SITE_URL'] + url_for(endpoint, **values)
    return url_for(endpoint, _external=True, **values)


def _safe_return_path(path):
    """Only local absolute paths are remembered as return targets."""
    if path and path.startswith('/') and not path.startswith('//') and '\\' not in path:
        return path
    return None


def _read_existing_session():
    """The provider session stored for this browser, if still valid."""
    data = session.get('auth_session')
    if not data:
        return None
    provider_session = ProviderSession.from_dict(data)
    if provider_session is None or provider_session.is_expired:
        session.pop('auth_session', None)
        return None
    return provider_session


def _clear_auth_session():
    logout_user()
    session.pop('auth_session', None)


def _sign_out(provider_session=None):
    """Revoke on the provider (best effort) and drop the local login."""
    identity = get_identity()
    if identity and provider_session:
        try:
            identity.sign_out(provider_session.access_token)
        except IdentityError as e:
            logger.warning(f"Provider sign-out failed: {e}")
    _clear_auth_session()


def _reject_session(provider_session=None):
    """Domain gate rejection: the session is dropped and the user starts over."""
    _sign_out(provider_session)
    domain = app.config['INSTITUTE_EMAIL_DOMAIN']
    return redirect(url_for('auth_login', error=rejection_message(domain)))


def _complete_sign_in(provider_session):
    """
    Finish a sign-in once the provider has issued a session.

    Applies the domain gate, creates the profile row on first sign-in and logs
    the user in. Returns a redirect response when the email is rejected,
    otherwise None.
    """
    email = (provider_session.email or '').strip().lower()
    if not is_institutional_email(email, app.config['INSTITUTE_EMAIL_DOMAIN']):
        logger.warning(f"Non-institutional email rejected at sign-in: {email or '<none>'}")
        return _reject_session(provider_session)

    user = db.session.get(User, provider_session.user_id)
    if not user:
        user = User.query.filter_by(email=email).first()
    if not user:
        user = User(id=provider_session.user_id, email=email)
        db.session.add(user)
        db.session.commit()
        logger.info(f"New profile created for {email}")
    elif user.email != email:
        user.email = email
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning(f"Sign-in email {email} for user {user.id} already belongs to another profile")
            _sign_out(provider_session)
            return redirect(url_for('auth_login', error="This email is already linked to another profile. Please contact support."))

    login_user(user)
    session['auth_session'] = provider_session.to_dict()
    logger.info(f"User {user.id} signed in")
    return None


# --- DOMAIN GATE ---

@app.before_request
def enforce_institutional_domain():
    """Re-check the session's email before any protected page is served"""
    if not is_protected_path(request.path) or not current_user.is_authenticated:
        return None
    provider_session = _read_existing_session()
    if provider_session is None:
        logger.info(f"Session expired for user {current_user.id} on {request.path}")
        _clear_auth_session()
        flash("Your session has expired. Please sign in again.", "info")
        return redirect(url_for('auth_login', next=request.path))
    if is_institutional_email(current_user.email, app.config['INSTITUTE_EMAIL_DOMAIN']):
        return None
    logger.warning(f"Non-institutional email detected on {request.path}: {current_user.email}")
    return _reject_session(provider_session)


# --- VALIDATION HELPERS ---

def validate_email(email):
    """Validate email format"""
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_whatsapp_number(number):
    """
    Validate a WhatsApp number and normalize it to what wa.me expects.
    Accepts 98765 43210, +91 98765-43210, 919876543210 and the like.
    Returns (True, digits_with_country_code) or (False, error_message).
    """
    if not number or not number.strip():
        return False, "Please provide a WhatsApp number."
    digits = re.sub(r'\D', '', number.strip())
    if len(digits) == 11 and digits.startswith('0'):
        digits = digits[1:]  # Strip trunk prefix
    if len(digits) == 10:
        digits = DEFAULT_COUNTRY_CODE + digits
    if len(digits) < 11 or len(digits) > 15:
        return False, "Please enter a valid WhatsApp number with country code."
    return True, digits


def validate_file_upload(file):
    """Validate uploaded file: size, extension, and MIME type"""
    if not file or not file.filename:
        return False, "No file provided"

    # Check file size
    file.seek(0, os.SEEK_END)
    file_size = file.tell()
    file.seek(0)  # Reset file pointer

    if file_size > MAX_UPLOAD_SIZE:
        return False, f"File size exceeds {MAX_UPLOAD_SIZE / (1024*1024):.1f}MB limit"

    # Check extension
    filename = secure_filename(file.filename)
    if not filename:
        return False, "Invalid filename"

    ext = filename.rsplit('.', 1)[1].lower() if '.' in filename else ''
    if ext not in ALLOWED_EXTENSIONS:
        return False, f"File type not allowed. Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"

    # Check MIME type
    mime_type = file.content_type
    if mime_type and mime_type.lower() not in ALLOWED_MIME_TYPES:
        return False, "Invalid file type"

    return True, None


def validate_price(price):
    """Validate price is within acceptable range"""
    try:
        price_float = float(price)
        if not math.isfinite(price_float) or price_float < MIN_PRICE or price_float > MAX_PRICE:
            return False, f"Price must be between ₹{MIN_PRICE:,.0f} and ₹{MAX_PRICE:,.0f}"
        return True, round(price_float, 2)
    except (ValueError, TypeError):
        return False, "Invalid price format"


def validate_listing_form(form):
    """
    Validate the create/edit listing form.
    Returns (True, values) or (False, error_message).
    """
    title = form.get('title', '').strip()
    if not title or len(title) > MAX_TITLE_LENGTH:
        return False, f"Title is required and must be under {MAX_TITLE_LENGTH} characters."

    description = form.get('description', '').strip()
    if not description or len(description) > MAX_DESCRIPTION_LENGTH:
        return False, f"Description is required and must be under {MAX_DESCRIPTION_LENGTH} characters."

    price_valid, price = validate_price(form.get('price', ''))
    if not price_valid:
        return False, f"Invalid price: {price}"

    price_type = form.get('price_type', 'fixed')
    if price_type not in dict(PRICE_TYPES):
        return False, "Please choose whether the price is fixed or negotiable."

    category = form.get('category', '')
    if category not in ITEM_CATEGORIES:
        return False, "Please choose a valid category."

    listing_type = form.get('listing_type', '')
    if listing_type not in dict(LISTING_TYPES):
        return False, "Please choose whether you want to sell, buy or rent."

    condition = form.get('condition', '').strip()
    if len(condition) > MAX_CONDITION_LENGTH:
        return False, f"Condition is too long (max {MAX_CONDITION_LENGTH} characters)."

    return True, {
        'title': title,
        'description': description,
        'price': price,
        'price_type': price_type,
        'category': category,
        'listing_type': listing_type,
        'condition': condition or None,
    }


def diff_listing_changes(item, values):
    """Only the fields whose submitted value differs from the stored listing"""
    return {field: value for field, value in values.items()
            if getattr(item, field) != value}


def _save_listing_images(files, user_id):
    """
    Validate then store each uploaded photo (one storage call per file).
    Returns (True, [public_url, ...]) or (False, error_message).
    """
    for file in files:
        is_valid, error_msg = validate_file_upload(file)
        if not is_valid:
            return False, f"File upload error: {error_msg}"

    storage = get_storage_instance()
    urls = []
    for i, file in enumerate(files):
        key = f"{user_id}_{int(datetime.utcnow().timestamp())}_{secrets.token_hex(4)}_{i}.jpg"
        try:
            storage.save_photo(file, key)
        except Exception as e:
            logger.error(f"Error processing image {file.filename}: {e}", exc_info=True)
            return False, "Error processing image. Please try again."
        urls.append(storage.get_photo_url(key))
    return True, urls


def _uploaded_files(field='images'):
    return [f for f in request.files.getlist(field) if f and f.filename]


# --- ERROR HANDLERS ---

@app.errorhandler(404)
def not_found_error(error):
    logger.warning(f"404 error: {request.url}")
    return render_template('error.html',
                         error_code=404,
                         error_message="Page not found"), 404


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"500 error: {error}", exc_info=True)
    db.session.rollback()
    return render_template('error.html',
                         error_code=500,
                         error_message="An internal error occurred. Please try again later."), 500


@app.errorhandler(413)
def request_entity_too_large(error):
    logger.warning("413 error: Upload too large")
    flash(f"Upload is too large. Each photo must be under {MAX_UPLOAD_SIZE // (1024*1024)}MB.", "error")
    return redirect(request.url)


# =========================================================
# SECTION 1: PUBLIC & BROWSING ROUTES
# =========================================================

@app.route('/')
def index():
    recent_items = Item.query.options(joinedload(Item.seller)) \
        .order_by(Item.created_at.desc(), Item.id.desc()) \
        .limit(RECENT_ITEMS_COUNT).all()
    return render_template('index.html', recent_items=recent_items)


@app.route('/browse')
def browse():
    """Listings with search, filters and pagination"""
    search_query = request.args.get('query', '').strip()
    category = request.args.get('category', '')
    listing_type = request.args.get('listing_type', '')
    min_price = request.args.get('min_price', type=float)
    max_price = request.args.get('max_price', type=float)
    page = request.args.get('page', 1, type=int)

    # Unknown filter values are ignored rather than rejected
    if category not in ITEM_CATEGORIES:
        category = ''
    if listing_type not in dict(LISTING_TYPES):
        listing_type = ''

    query = Item.query.options(joinedload(Item.seller))

    if category:
        query = query.filter(Item.category == category)
    if listing_type:
        query = query.filter(Item.listing_type == listing_type)
    if search_query:
        search_pattern = f"%{search_query}%"
        query = query.filter(
            or_(
                Item.title.ilike(search_pattern),
                Item.description.ilike(search_pattern)
            )
        )
    if min_price is not None:
        query = query.filter(Item.price >= min_price)
    if max_price is not None:
        query = query.filter(Item.price <= max_price)

    query = query.order_by(Item.created_at.desc(), Item.id.desc())

    pagination = query.paginate(
        page=page,
        per_page=ITEMS_PER_PAGE,
        error_out=False
    )

    return render_template('browse.html',
                         items=pagination.items,
                         pagination=pagination,
                         search_query=search_query,
                         active_category=category,
                         active_listing_type=listing_type,
                         min_price=min_price,
                         max_price=max_price)


@app.route('/search')
def search():
    return redirect(url_for('browse', query=request.args.get('q', '').strip()))


@app.route('/items/<int:item_id>')
def item_detail(item_id):
    item = Item.query.options(joinedload(Item.seller)).filter_by(id=item_id).first_or_404()
    is_owner = current_user.is_authenticated and item.user_id == current_user.id
    return render_template('item.html', item=item, is_owner=is_owner)


# --- IMAGE SERVING ROUTE (local storage only) ---
@app.route('/uploads/<filename>')
def uploaded_file(filename):
    return send_from_directory(app.config['UPLOAD_FOLDER'], filename)


# =========================================================
# SECTION 2: SIGN-IN & CALLBACKS
# =========================================================

@app.route('/auth/login', methods=['GET', 'POST'])
@limiter.limit(RATE_LIMIT_LOGIN, methods=['POST'])
def auth_login():
    # Error passed along by the domain gate or a failed callback
    error = request.args.get('error')
    if current_user.is_authenticated and not error:
        return redirect(url_for('index'))

    next_path = _safe_return_path(request.args.get('next'))
    if next_path:
        session['auth_return_to'] = next_path

    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        domain = app.config['INSTITUTE_EMAIL_DOMAIN']

        if not validate_email(email):
            flash("Please provide a valid email address.", "error")
            return render_template('login.html', prefill_email=email)

        if not is_institutional_email(email, domain):
            flash(f"Please use your Institute email address (ending with {domain} or any subdomain).", "error")
            return render_template('login.html', prefill_email=email)

        identity = get_identity()
        if not identity:
            flash("Email sign-in is not configured yet. Please try again later.", "error")
            return render_template('login.html', prefill_email=email)

        # Start from a clean slate so an old session can't collide with the new one
        _clear_auth_session()
        try:
            identity.send_magic_link(email, _external_url('auth_callback'))
        except IdentityError as e:
            logger.error(f"Magic link request failed for {email}: {e}", exc_info=True)
            flash("Failed to sign in. Please try again.", "error")
            return render_template('login.html', prefill_email=email)

        flash("Check your email for a login link!", "success")
        return render_template('login.html', prefill_email=email, link_sent=True)

    return render_template('login.html', error=error, prefill_email='')


@app.route('/auth/google')
def auth_google():
    """Send the user to the provider's Google consent screen."""
    identity = get_identity()
    if not identity:
        flash("Sign in with Google is not configured. Please use your Institute email.", "error")
        return redirect(url_for('auth_login'))

    next_path = _safe_return_path(request.args.get('next'))
    if next_path:
        session['auth_return_to'] = next_path

    _clear_auth_session()
    try:
        oauth_url = identity.oauth_url('google', _external_url('auth_callback'), {
            'access_type': 'offline',
            'prompt': 'consent',
            'hd': app.config['INSTITUTE_EMAIL_DOMAIN'],
        })
    except IdentityError as e:
        logger.error(f"Google sign-in could not start: {e}", exc_info=True)
        flash("Failed to sign in with Google. Please try again.", "error")
        return redirect(url_for('auth_login'))
    return redirect(oauth_url)


@app.route('/auth/callback', methods=['GET', 'POST'])
def auth_callback():
    """
    Where the provider sends the browser after a magic link or OAuth round trip.

    Query-string credentials are handled straight away. Anything else might be
    sitting in the URL fragment, which browsers never send, so the loading page
    posts the fragment back here once.
    """
    recovered = request.args.get('recovered') == '1'

    if request.method == 'POST':
        fragment = request.form.get('fragment', '')
    elif 'code' in request.args or 'error' in request.args:
        fragment = ''
    else:
        return render_template('auth_callback.html', state=LOADING, result=None)

    credential = extract_credential(request.query_string.decode('utf-8', 'replace'), fragment)
    identity = get_identity()
    if identity is None and isinstance(credential, (AuthCode, ImplicitToken)):
        logger.error("Auth callback hit but the identity provider is not configured")
        return redirect(url_for('auth_login', error="Sign-in is not configured yet."))

    reconciler = CallbackReconciler(
        identity,
        _read_existing_session,
        return_to=session.get('auth_return_to'),
        home_url=url_for('index'),
        login_url=url_for('auth_login'),
        recovery_url=url_for('auth_callback', recovered=1)
    )
    result = reconciler.reconcile(credential, recovered=recovered)

    if result.state == LOADING:
        return redirect(result.redirect_to)

    if result.state == SUCCESS:
        rejection = _complete_sign_in(result.session)
        if rejection:
            return rejection
        session.pop('auth_return_to', None)

    return render_template('auth_callback.html', state=result.state, result=result)


@app.route('/api/auth/callback')
def api_auth_callback():
    """
    Server-side code exchange: always ends in a redirect.

    Exchange failures follow AUTH_CALLBACK_FAIL_OPEN.
    """
    home = url_for('index')

    # Tokens in the URL mean the provider already used the implicit channel;
    # exchanging again would bounce the browser back here forever
    if 'access_token' in request.args:
        logger.info("Access token found in callback URL, skipping exchange to break redirect loop")
        return redirect(home)

    code = request.args.get('code')
    if not code:
        logger.info("No code provided in callback, redirecting to home")
        return redirect(home)

    identity = get_identity()
    if not identity:
        logger.error("Auth callback hit but the identity provider is not configured")
        return redirect(home)

    try:
        provider_session = identity.exchange_code(code)
    except IdentityError as e:
        logger.error(f"Error exchanging code for session: {e}", exc_info=True)
        if app.config['AUTH_CALLBACK_FAIL_OPEN']:
            return redirect(home)
        return redirect(url_for('auth_login', error=str(e)))

    rejection = _complete_sign_in(provider_session)
    if rejection:
        return rejection
    return redirect(home)


@app.route('/auth/logout')
@login_required
def auth_logout():
    _sign_out(_read_existing_session())
    flash("You have been signed out.", "success")
    return redirect(url_for('index'))


# =========================================================
# SECTION 3: LISTING MANAGEMENT
# =========================================================

@app.route('/create-listing', methods=['GET', 'POST'])
@login_required
def create_listing():
    if request.method == 'POST':
        is_valid, values = validate_listing_form(request.form)
        if not is_valid:
            flash(values, "error")
            return render_template('listing_form.html', item=None, form=request.form)

        files = _uploaded_files()
        if len(files) > MAX_IMAGES_PER_LISTING:
            flash(f"You can upload a maximum of {MAX_IMAGES_PER_LISTING} images.", "error")
            return render_template('listing_form.html', item=None, form=request.form)

        saved, image_urls = _save_listing_images(files, current_user.id)
        if not saved:
            flash(image_urls, "error")
            return render_template('listing_form.html', item=None, form=request.form)

        item = Item(user_id=current_user.id, images=image_urls, **values)
        db.session.add(item)
        db.session.commit()
        logger.info(f"Item {item.id} created by user {current_user.id}")
        flash("Your listing is live!", "success")
        return redirect(url_for('item_detail', item_id=item.id))

    return render_template('listing_form.html', item=None, form={})


@app.route('/items/<int:item_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_listing(item_id):
    item = db.get_or_404(Item, item_id)

    # Security: Only the owner can edit
    if item.user_id != current_user.id:
        flash("You do not have permission to edit this listing.", "error")
        return redirect(url_for('item_detail', item_id=item.id))

    if request.method == 'POST':
        is_valid, values = validate_listing_form(request.form)
        if not is_valid:
            flash(values, "error")
            return render_template('listing_form.html', item=item, form=request.form)

        to_remove = set(request.form.getlist('remove_images'))
        kept_images = [url for url in (item.images or []) if url not in to_remove]
        files = _uploaded_files()
        if len(kept_images) + len(files) > MAX_IMAGES_PER_LISTING:
            flash(f"You can upload a maximum of {MAX_IMAGES_PER_LISTING} images.", "error")
            return render_template('listing_form.html', item=item, form=request.form)

        changes = diff_listing_changes(item, values)

        if files:
            saved, new_urls = _save_listing_images(files, current_user.id)
            if not saved:
                flash(new_urls, "error")
                return render_template('listing_form.html', item=item, form=request.form)
            kept_images += new_urls
        if kept_images != list(item.images or []):
            changes['images'] = kept_images

        if not changes:
            flash("No changes to save.", "info")
            return redirect(url_for('item_detail', item_id=item.id))

        for field, value in changes.items():
            setattr(item, field, value)
        db.session.commit()
        logger.info(f"Item {item.id} updated by user {current_user.id}: {', '.join(sorted(changes))}")
        flash("Listing updated successfully!", "success")
        return redirect(url_for('item_detail', item_id=item.id))

    return render_template('listing_form.html', item=item, form={})


@app.route('/items/<int:item_id>/delete', methods=['POST'])
@login_required
def delete_listing(item_id):
    item = db.get_or_404(Item, item_id)

    if item.user_id != current_user.id:
        flash("You do not have permission to delete this listing.", "error")
        return redirect(url_for('item_detail', item_id=item.id))

    db.session.delete(item)
    db.session.commit()
    logger.info(f"Item {item_id} deleted by user {current_user.id}")
    flash("Listing deleted.", "success")
    return redirect(url_for('my_listings'))


@app.route('/my-listings')
@login_required
def my_listings():
    items = Item.query.filter_by(user_id=current_user.id) \
        .order_by(Item.created_at.desc(), Item.id.desc()).all()
    return render_template('my_listings.html', items=items)


# =========================================================
# SECTION 4: PROFILE
# =========================================================

@app.route('/profile', methods=['GET', 'POST'])
@login_required
def profile():
    if request.method == 'POST':
        full_name = request.form.get('full_name', '').strip()
        department = request.form.get('department', '').strip()
        scholar_id = request.form.get('scholar_id', '').strip()
        whatsapp_number = request.form.get('whatsapp_number', '').strip()

        if not full_name:
            flash("Full name cannot be empty.", "error")
        elif len(full_name) > MAX_NAME_LENGTH:
            flash(f"Name is too long (max {MAX_NAME_LENGTH} characters).", "error")
        elif not department:
            flash("Department cannot be empty.", "error")
        elif len(department) > MAX_DEPARTMENT_LENGTH:
            flash(f"Department is too long (max {MAX_DEPARTMENT_LENGTH} characters).", "error")
        elif scholar_id and (len(scholar_id) > MAX_SCHOLAR_ID_LENGTH or not scholar_id.isalnum()):
            flash(f"Scholar ID must be letters and digits only (max {MAX_SCHOLAR_ID_LENGTH}).", "error")
        else:
            if whatsapp_number:
                number_valid, number_result = validate_whatsapp_number(whatsapp_number)
                if not number_valid:
                    flash(number_result, "error")
                    return render_template('profile.html', form=request.form)
                whatsapp_number = number_result

            current_user.full_name = full_name
            current_user.department = department
            current_user.scholar_id = scholar_id or None
            current_user.whatsapp_number = whatsapp_number or None  # Allow clearing
            db.session.commit()
            logger.info(f"User {current_user.id} updated profile")
            flash("Profile updated successfully!", "success")
            return redirect(url_for('profile'))

        return render_template('profile.html', form=request.form)

    return render_template('profile.html', form=None)


@app.route('/health')
def health_check():
    """Health check endpoint for monitoring and load balancers"""
    try:
        # Check database connectivity
        db.session.execute(db.text('SELECT 1'))

        health_status = {
            'status': 'healthy',
            'database': 'connected',
            'identity': 'configured' if get_identity() else 'not configured',
            'storage': 's3' if get_storage_instance().is_s3() else 'local',
            'timestamp': datetime.utcnow().isoformat()
        }
        return jsonify(health_status), 200
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 503


if __name__ == '__main__':
    with app.app_context():
        # Local SQLite only; hosted databases use migrations
        if 'DATABASE_URL' not in os.environ:
            db.create_all()
    app.run(debug=True, port=5000, host='0.0.0.0')
