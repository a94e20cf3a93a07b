"""
Application-wide constants for NIT Marketplace
"""

MARKETPLACE_NAME = 'NIT Marketplace'

# Institutional sign-in (subdomains such as cs.nits.ac.in are accepted too)
DEFAULT_INSTITUTE_EMAIL_DOMAIN = 'nits.ac.in'

# Listing Taxonomy
ITEM_CATEGORIES = [
    'Lab Equipment',
    'Books/Notes',
    'Furniture',
    'Electronics',
    'Tickets',
    'Miscellaneous',
]

LISTING_TYPES = [
    ('sell', 'I want to sell'),
    ('buy', 'I want to buy'),
    ('rent', 'I want to rent out'),
]

PRICE_TYPES = [
    ('fixed', 'Fixed price'),
    ('negotiable', 'Negotiable'),
]

# File Upload Configuration
MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10MB
MAX_IMAGES_PER_LISTING = 5
ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'webp'}
ALLOWED_MIME_TYPES = {'image/jpeg', 'image/png', 'image/jpg', 'image/webp'}

# Image Processing Configuration
IMAGE_QUALITY = 80  # JPEG quality (0-100)
MAX_IMAGE_DIMENSION = 2000  # Longest side in pixels

# Input Validation
MIN_PRICE = 0.00  # Zero is allowed for "want to buy" posts
MAX_PRICE = 1000000.00
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 2000
MAX_CONDITION_LENGTH = 50
MAX_EMAIL_LENGTH = 120
MAX_NAME_LENGTH = 100
MAX_DEPARTMENT_LENGTH = 100
MAX_SCHOLAR_ID_LENGTH = 20

# WhatsApp contact links (wa.me wants the full international number)
DEFAULT_COUNTRY_CODE = '91'
WHATSAPP_MESSAGE = 'Hi, I\'m interested in your listing "{title}" on ' + MARKETPLACE_NAME + '.'

# Pagination
ITEMS_PER_PAGE = 24
RECENT_ITEMS_COUNT = 8

# Rate Limiting (requests per time period)
RATE_LIMIT_LOGIN = "5 per minute"

# Auth callback page: seconds before the automatic redirect
AUTH_SUCCESS_REDIRECT_DELAY = 3
AUTH_CANCEL_REDIRECT_DELAY = 2

# Provider error codes that mean the user backed out of sign-in
CANCELLATION_ERROR_CODES = {'access_denied', 'user_cancelled'}

# Routes the domain gate re-checks on every request
PROTECTED_PATH_PATTERNS = [
    r'^/profile(/.*)?$',
    r'^/my-listings(/.*)?$',
    r'^/create-listing(/.*)?$',
    r'^/items/[^/]+/edit/?$',
    r'^/items/[^/]+/delete/?$',
]
