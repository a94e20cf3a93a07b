"""
Unit tests for constants.

These verify that constants are set correctly.
Run: pytest tests/test_constants.py -v
"""
import re
import pytest
from constants import (
    DEFAULT_INSTITUTE_EMAIL_DOMAIN, ITEM_CATEGORIES, LISTING_TYPES, PRICE_TYPES,
    MAX_UPLOAD_SIZE, MAX_IMAGES_PER_LISTING, ALLOWED_EXTENSIONS,
    MIN_PRICE, MAX_PRICE, ITEMS_PER_PAGE, DEFAULT_COUNTRY_CODE, WHATSAPP_MESSAGE,
    AUTH_SUCCESS_REDIRECT_DELAY, AUTH_CANCEL_REDIRECT_DELAY,
    CANCELLATION_ERROR_CODES, PROTECTED_PATH_PATTERNS
)


@pytest.mark.unit
class TestConstants:
    """Test that constants are set correctly"""

    def test_institute_domain(self):
        """The default domain is the institute's"""
        assert DEFAULT_INSTITUTE_EMAIL_DOMAIN == 'nits.ac.in'

    def test_item_categories(self):
        """Test the listing categories"""
        assert len(ITEM_CATEGORIES) == 6
        assert 'Lab Equipment' in ITEM_CATEGORIES
        assert 'Books/Notes' in ITEM_CATEGORIES
        assert len(set(ITEM_CATEGORIES)) == len(ITEM_CATEGORIES)

    def test_listing_and_price_types(self):
        """Test the sell/buy/rent and fixed/negotiable choices"""
        assert [key for key, _ in LISTING_TYPES] == ['sell', 'buy', 'rent']
        assert [key for key, _ in PRICE_TYPES] == ['fixed', 'negotiable']

    def test_upload_size_limit(self):
        """Test file upload size limit"""
        assert MAX_UPLOAD_SIZE == 10 * 1024 * 1024  # 10MB
        assert MAX_IMAGES_PER_LISTING == 5

    def test_allowed_extensions(self):
        """Test allowed file extensions"""
        assert 'jpg' in ALLOWED_EXTENSIONS
        assert 'jpeg' in ALLOWED_EXTENSIONS
        assert 'png' in ALLOWED_EXTENSIONS
        assert 'webp' in ALLOWED_EXTENSIONS
        assert 'exe' not in ALLOWED_EXTENSIONS
        assert 'pdf' not in ALLOWED_EXTENSIONS

    def test_price_bounds(self):
        """Free listings are allowed, prices are in rupees"""
        assert MIN_PRICE == 0
        assert MAX_PRICE > MIN_PRICE

    def test_whatsapp_settings(self):
        """Test WhatsApp contact settings"""
        assert DEFAULT_COUNTRY_CODE.isdigit()
        assert '{title}' in WHATSAPP_MESSAGE

    def test_callback_delays(self):
        """Success lingers a little longer than a cancellation"""
        assert AUTH_SUCCESS_REDIRECT_DELAY == 3
        assert AUTH_CANCEL_REDIRECT_DELAY == 2

    def test_cancellation_codes(self):
        """Test which provider errors count as a cancellation"""
        assert 'access_denied' in CANCELLATION_ERROR_CODES
        assert 'server_error' not in CANCELLATION_ERROR_CODES

    def test_protected_path_patterns_compile(self):
        """Every protected path pattern is a valid regex"""
        for pattern in PROTECTED_PATH_PATTERNS:
            re.compile(pattern)

    def test_pagination(self):
        """Test pagination settings"""
        assert ITEMS_PER_PAGE == 24
